"""Atom feeds of recent posts, of a board's topics and of a topic's posts."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from vpub.markup import convert
from vpub.models import Post, Settings, Topic

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'
ATOM_CONTENT_TYPE = "application/atom+xml"
SITE_FEED_CONTENT_TYPE = "application/atom+xml; charset=utf-8"

_INDENT = "    "
_ENTITIES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _is_xml_char(ch: str) -> bool:
    code = ord(ch)
    return (
        0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _escape(text: str) -> str:
    return "".join(
        _ENTITIES.get(ch) or (ch if _is_xml_char(ch) else "\ufffd") for ch in text
    )


def _leaf(depth: int, tag: str, text: str) -> str:
    return f"{_INDENT * depth}<{tag}>{_escape(text)}</{tag}>"


@dataclass
class Link:
    href: str = ""
    rel: str = ""
    type: str = ""
    hreflang: str = ""
    title: str = ""
    length: int = 0

    def _render(self, depth: int) -> str:
        attrs = [("rel", self.rel), ("href", self.href), ("type", self.type)]
        attrs += [("hreflang", self.hreflang), ("title", self.title)]
        attrs.append(("length", str(self.length) if self.length else ""))
        text = "".join(
            f' {name}="{_escape(value)}"'
            for name, value in attrs
            if value or name == "href"
        )
        return f"{_INDENT * depth}<link{text}></link>"


@dataclass
class Person:
    name: str = ""
    uri: str = ""
    email: str = ""
    inner_xml: str = ""

    def _render(self, depth: int) -> list[str]:
        lines = [f"{_INDENT * depth}<author>", _leaf(depth + 1, "name", self.name)]
        if self.uri:
            lines.append(_leaf(depth + 1, "uri", self.uri))
        if self.email:
            lines.append(_leaf(depth + 1, "email", self.email))
        lines[-1] += self.inner_xml
        lines.append(f"{_INDENT * depth}</author>")
        return lines


@dataclass
class Text:
    type: str = ""
    body: str = ""

    def _render(self, depth: int, tag: str) -> str:
        return f'{_INDENT * depth}<{tag} type="{_escape(self.type)}">{_escape(self.body)}</{tag}>'


@dataclass
class Entry:
    title: str = ""
    id: str = ""
    links: list[Link] = field(default_factory=list)
    published: str = ""
    updated: str = ""
    author: Person | None = None
    summary: Text | None = None
    content: Text | None = None

    def _render(self, depth: int) -> list[str]:
        inner = depth + 1
        lines = [f"{_INDENT * depth}<entry>", _leaf(inner, "title", self.title)]
        lines.append(_leaf(inner, "id", self.id))
        lines.extend(link._render(inner) for link in self.links)
        lines.append(_leaf(inner, "published", self.published))
        lines.append(_leaf(inner, "updated", self.updated))
        if self.author is not None:
            lines.extend(self.author._render(inner))
        if self.summary is not None:
            lines.append(self.summary._render(inner, "summary"))
        if self.content is not None:
            lines.append(self.content._render(inner, "content"))
        lines.append(f"{_INDENT * depth}</entry>")
        return lines


@dataclass
class Feed:
    title: str = ""
    id: str = ""
    links: list[Link] = field(default_factory=list)
    updated: str = ""
    author: Person | None = None
    icon: str = ""
    logo: str = ""
    subtitle: str = ""
    entries: list[Entry] = field(default_factory=list)

    def to_xml(self) -> str:
        """Serialise the feed as an indented Atom document with XML declaration."""
        lines = [f'<feed xmlns="{ATOM_NAMESPACE}">', _leaf(1, "title", self.title)]
        lines.append(_leaf(1, "id", self.id))
        lines.extend(link._render(1) for link in self.links)
        lines.append(_leaf(1, "updated", self.updated))
        if self.author is not None:
            lines.extend(self.author._render(1))
        for tag, value in (("icon", self.icon), ("logo", self.logo), ("subtitle", self.subtitle)):
            if value:
                lines.append(_leaf(1, tag, value))
        for entry in self.entries:
            lines.extend(entry._render(1))
        lines.append("</feed>")
        return XML_HEADER + "\n".join(lines)


def format_time(moment: datetime) -> str:
    """Format as YYYY-MM-DDTHH:MM:SS±HH:MM; naive times are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    offset = int(moment.utcoffset().total_seconds())
    sign = "-" if offset < 0 else "+"
    minutes = abs(offset) // 60
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
        f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
    )


def _clean(path: str) -> str:
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def join_path(base: str, *args: str) -> str:
    """Replace the path of URL ``base`` with the joined ``args``."""
    parts = urlsplit(base)
    joined = "/".join(arg for arg in args if arg)
    path = _clean(joined) if joined else ""
    if parts.netloc and path and not path.startswith("/"):
        path = "/" + path
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def entry_from_post(url: str, post: Post) -> Entry:
    """An entry linking to the post's anchor within its topic."""
    link = join_path(url, "topics") + f"/{post.topic_id}#{post.id}"
    return Entry(
        title=post.subject,
        id=link,
        links=[Link(rel="alternate", href=link, type="text/html")],
        updated=format_time(post.updated_at),
        published=format_time(post.created_at),
        author=Person(name=post.user.name),
        content=Text(type="html", body=convert(post.content, True)),
    )


def entry_from_topic(url: str, topic: Topic) -> Entry:
    """An entry for a topic, showing its opening post and reply count."""
    link = join_path(url, "topics") + f"/{topic.id}"
    if topic.posts > 2:
        replies = f"<p>{topic.posts - 1} replies</p>"
    elif topic.posts == 2:
        replies = "<p>1 reply</p>"
    else:
        replies = ""
    return Entry(
        title=topic.post.subject,
        id=link,
        links=[Link(rel="alternate", href=link, type="text/html")],
        updated=format_time(topic.updated_at),
        published=format_time(topic.post.created_at),
        author=Person(name=topic.post.user.name),
        content=Text(type="html", body=convert(topic.post.content, True) + replies),
    )


def _now(now: datetime | None) -> datetime:
    return datetime.now().astimezone() if now is None else now


def site_feed(storage: Any, settings: Settings, now: datetime | None = None) -> Feed:
    """Feed of the first page of the most recent posts."""
    posts, _ = storage.posts(1)
    return Feed(
        title=settings.name,
        id=settings.url,
        updated=format_time(_now(now)),
        links=[
            Link(rel="self", href=join_path(settings.url, "feed.atom")),
            Link(rel="alternate", type="text/html", href=settings.url),
        ],
        entries=[entry_from_post(settings.url, post) for post in posts],
    )


def board_feed(
    storage: Any, settings: Settings, board_id: int, now: datetime | None = None
) -> Feed:
    """Feed of the first page of a board's topics."""
    topics, _ = storage.topics_by_board_id(board_id, 1)
    return Feed(
        title=settings.name,
        id=settings.url,
        updated=format_time(_now(now)),
        links=[
            Link(rel="self", href=join_path(settings.url, "boards", str(board_id), "feed.atom")),
            Link(
                rel="alternate",
                type="text/html",
                href=join_path(settings.url, "boards", str(board_id)),
            ),
        ],
        entries=[entry_from_topic(settings.url, topic) for topic in topics],
    )


def topic_feed(
    storage: Any, settings: Settings, topic_id: int, now: datetime | None = None
) -> Feed:
    """Feed of every post in a topic."""
    posts = storage.posts_by_topic_id(topic_id)
    return Feed(
        title=settings.name,
        id=settings.url,
        updated=format_time(_now(now)),
        links=[
            Link(rel="self", href=join_path(settings.url, "topics", str(topic_id), "feed.atom")),
            Link(
                rel="alternate",
                type="text/html",
                href=join_path(settings.url, "topics", str(topic_id)),
            ),
        ],
        entries=[entry_from_post(settings.url, post) for post in posts],
    )