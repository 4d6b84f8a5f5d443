import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

from vpub.feeds import (
    ATOM_NAMESPACE,
    XML_HEADER,
    Entry,
    Feed,
    Link,
    Person,
    Text,
    board_feed,
    entry_from_post,
    entry_from_topic,
    format_time,
    join_path,
    site_feed,
    topic_feed,
)
from vpub.markup import convert
from vpub.models import Post, Settings, Topic, User

URL = "https://example.com"
NS = {"a": ATOM_NAMESPACE}
MOMENT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _post(post_id=9, topic_id=5, subject="Hello", content="**hi**"):
    return Post(
        id=post_id,
        topic_id=topic_id,
        subject=subject,
        content=content,
        user=User(id=1, name="alice"),
        created_at=MOMENT,
        updated_at=MOMENT + timedelta(hours=1),
    )


def _topic(posts):
    return Topic(id=7, posts=posts, updated_at=MOMENT, post=_post(subject="Topic", content="body"))


class FakeStore:
    def __init__(self, posts=(), topics=()):
        self._posts = list(posts)
        self._topics = list(topics)
        self.calls = []

    def posts(self, page):
        self.calls.append(("posts", page))
        return self._posts, False

    def topics_by_board_id(self, board_id, page):
        self.calls.append(("topics", board_id, page))
        return self._topics, True

    def posts_by_topic_id(self, topic_id):
        self.calls.append(("topic", topic_id))
        return self._posts


def test_format_time_utc():
    assert format_time(MOMENT) == "2024-01-02T03:04:05+00:00"


def test_format_time_negative_offset():
    zone = timezone(timedelta(hours=-7))
    assert format_time(MOMENT.astimezone(zone)).endswith("-07:00")


def test_format_time_naive_is_utc():
    assert format_time(MOMENT.replace(tzinfo=None)) == format_time(MOMENT)


def test_join_path_replaces_path():
    assert join_path(URL, "topics") == "https://example.com/topics"
    assert join_path(URL + "/forum/?x=1", "boards", "3") == "https://example.com/boards/3?x=1"


def test_join_path_without_host():
    assert join_path("", "feed.atom") == "feed.atom"
    assert join_path(URL) == URL


def test_entry_from_post():
    post = _post()
    entry = entry_from_post(URL, post)
    assert entry.id == "https://example.com/topics/5#9"
    assert entry.links[0].href == entry.id
    assert entry.title == post.subject
    assert entry.author.name == "alice"
    assert entry.content.body == convert(post.content, True)
    assert entry.published == format_time(post.created_at)
    assert entry.updated == format_time(post.updated_at)


def test_entry_from_topic_reply_counts():
    assert entry_from_topic(URL, _topic(3)).content.body.endswith("<p>2 replies</p>")
    assert entry_from_topic(URL, _topic(2)).content.body.endswith("<p>1 reply</p>")
    assert entry_from_topic(URL, _topic(1)).content.body == convert("body", True)
    assert entry_from_topic(URL, _topic(1)).id == join_path(URL, "topics") + "/7"


def test_to_xml_round_trip():
    feed = Feed(
        title="A <b> & 'c'",
        id=URL,
        links=[Link(rel="self", href=URL + "/feed.atom")],
        updated=format_time(MOMENT),
        entries=[
            Entry(
                title="line\none",
                id="e1",
                author=Person(name="bob"),
                content=Text(type="html", body="<p>x & y</p>"),
            )
        ],
    )
    text = feed.to_xml()
    assert text.startswith(XML_HEADER)
    root = ET.fromstring(text[len(XML_HEADER):])
    assert root.find("a:title", NS).text == feed.title
    assert root.find("a:link", NS).get("href") == URL + "/feed.atom"
    assert root.find("a:link", NS).get("type") is None
    entry = root.find("a:entry", NS)
    assert entry.find("a:title", NS).text == "line\none"
    assert entry.find("a:author/a:name", NS).text == "bob"
    assert entry.find("a:content", NS).text == "<p>x & y</p>"
    assert entry.find("a:summary", NS) is None
    assert root.find("a:author", NS) is None


def test_site_feed():
    store = FakeStore(posts=[_post(), _post(post_id=10)])
    settings = Settings(name="vpub", url=URL)
    feed = site_feed(store, settings, MOMENT)
    assert store.calls == [("posts", 1)]
    assert feed.title == "vpub"
    assert feed.id == URL
    assert feed.updated == format_time(MOMENT)
    assert [link.href for link in feed.links] == [join_path(URL, "feed.atom"), URL]
    assert [e.id for e in feed.entries] == [
        entry_from_post(URL, p).id for p in store._posts
    ]


def test_board_feed():
    store = FakeStore(topics=[_topic(2)])
    feed = board_feed(store, Settings(name="vpub", url=URL), 4, MOMENT)
    assert store.calls == [("topics", 4, 1)]
    assert feed.links[0].href == join_path(URL, "boards", "4", "feed.atom")
    assert feed.links[1].href == join_path(URL, "boards", "4")
    assert feed.links[1].type == "text/html"
    assert len(feed.entries) == 1
    root = ET.fromstring(feed.to_xml()[len(XML_HEADER):])
    assert len(root.findall("a:entry", NS)) == 1


def test_topic_feed():
    store = FakeStore(posts=[_post(topic_id=3)])
    feed = topic_feed(store, Settings(name="vpub", url=URL), 3, MOMENT)
    assert store.calls == [("topic", 3)]
    assert feed.links[0].href == join_path(URL, "topics", "3", "feed.atom")
    assert feed.entries[0].id == join_path(URL, "topics") + "/3#9"
    root = ET.fromstring(feed.to_xml()[len(XML_HEADER):])
    assert root.find("a:entry/a:content", NS).get("type") == "html"