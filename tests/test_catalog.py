from datetime import datetime, timezone

import pytest

from vpub.catalog import KEY_ALPHABET, CatalogStore, random_key
from vpub.database import NotFoundError, StoreError, connect, migrate
from vpub.models import BoardRequest, ForumRequest, Settings


@pytest.fixture
def connection():
    conn = connect(":memory:")
    migrate(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(connection):
    return CatalogStore(connection)


def _add_user(connection, name):
    with connection:
        return connection.execute(
            "INSERT INTO users (name, hash) VALUES (?, ?)", (name, "x")
        ).lastrowid


def _add_topic(connection, board_id, user_id):
    with connection:
        topic_id = connection.execute(
            "INSERT INTO topics (board_id, post_id) VALUES (?, -1)", (board_id,)
        ).lastrowid
        post_id = connection.execute(
            "INSERT INTO posts (subject, content, topic_id, user_id) VALUES (?, ?, ?, ?)",
            ("subject", "content", topic_id, user_id),
        ).lastrowid
        connection.execute("UPDATE topics SET post_id = ? WHERE id = ?", (post_id, topic_id))
    return topic_id


def _column(connection, query):
    return [row[0] for row in connection.execute(query)]


def test_random_key_has_requested_length_and_letters():
    value = random_key(20)
    assert len(value) == 20
    assert set(value) <= set(KEY_ALPHABET)


def test_default_settings(store):
    settings = store.settings()
    assert settings.name == "vpub"
    assert settings.per_page == 50
    assert settings.lang == "en"
    assert (settings.css, settings.footer, settings.url) == ("", "", "")


def test_update_settings_round_trip(store):
    wanted = Settings(
        name="Forum", css="body{}", footer="bye", per_page=10, url="https://example.com/", lang="fr"
    )
    store.update_settings(wanted)
    assert store.settings() == wanted


def test_forum_round_trip(store):
    forum_id = store.create_forum(ForumRequest(name="General", position=3, is_locked=True))
    forum = store.forum_by_id(forum_id)
    assert (forum.id, forum.name, forum.position, forum.is_locked) == (forum_id, "General", 3, True)


def test_forum_by_id_missing(store):
    with pytest.raises(NotFoundError):
        store.forum_by_id(999)


def test_forums_ordered_by_position(store):
    store.create_forum(ForumRequest(name="Second", position=2))
    store.create_forum(ForumRequest(name="First", position=1))
    assert [forum.name for forum in store.forums()] == ["First", "Second"]


def test_duplicate_forum_name_is_rejected(store):
    store.create_forum(ForumRequest(name="General"))
    with pytest.raises(StoreError, match='unable to create forum "General"'):
        store.create_forum(ForumRequest(name="General"))


def test_forum_name_checks_ignore_case(store):
    forum_id = store.create_forum(ForumRequest(name="General"))
    assert store.forum_name_exists("GENERAL") is True
    assert store.forum_name_exists("Other") is False
    assert store.another_forum_exists(forum_id, "general") is False
    assert store.another_forum_exists(forum_id + 1, "general") is True


def test_update_forum(store):
    forum_id = store.create_forum(ForumRequest(name="Old"))
    store.update_forum(forum_id, ForumRequest(name="New", position=7, is_locked=True))
    forum = store.forum_by_id(forum_id)
    assert (forum.name, forum.position, forum.is_locked) == ("New", 7, True)


def test_board_round_trip(store):
    forum_id = store.create_forum(ForumRequest(name="General", is_locked=True))
    board_id = store.create_board(
        BoardRequest(name="News", description="All news", position=2, forum_id=forum_id, is_locked=True)
    )
    board = store.board_by_id(board_id)
    assert (board.id, board.name, board.description, board.position) == (
        board_id,
        "News",
        "All news",
        2,
    )
    assert board.is_locked is True
    assert (board.forum.id, board.forum.name, board.forum.is_locked) == (forum_id, "General", True)


def test_board_by_id_missing(store):
    with pytest.raises(NotFoundError):
        store.board_by_id(42)


def test_create_board_needs_existing_forum(store):
    with pytest.raises(StoreError, match="unable to create board"):
        store.create_board(BoardRequest(name="Orphan", forum_id=999))


def test_boards_follow_forum_then_board_position(store):
    late = store.create_forum(ForumRequest(name="Late", position=1))
    early = store.create_forum(ForumRequest(name="Early", position=0))
    store.create_board(BoardRequest(name="b", position=1, forum_id=late))
    store.create_board(BoardRequest(name="a", position=0, forum_id=late))
    store.create_board(BoardRequest(name="c", position=0, forum_id=early))
    boards = store.boards()
    assert [board.name for board in boards] == ["c", "a", "b"]
    assert [board.forum.name for board in boards] == ["Early", "Late", "Late"]
    assert all(board.updated_at.tzinfo == timezone.utc for board in boards)
    assert [board.name for board in store.boards_by_forum_id(late)] == ["a", "b"]


def test_board_name_checks(store):
    forum_id = store.create_forum(ForumRequest(name="General"))
    board_id = store.create_board(BoardRequest(name="News", forum_id=forum_id))
    assert store.board_name_exists("news") is True
    assert store.board_name_exists("Other") is False
    assert store.another_board_exists(board_id, "NEWS") is False
    assert store.another_board_exists(board_id + 1, "NEWS") is True


def test_update_board(store):
    first = store.create_forum(ForumRequest(name="First"))
    second = store.create_forum(ForumRequest(name="Second"))
    board_id = store.create_board(BoardRequest(name="News", forum_id=first))
    store.update_board(
        board_id, BoardRequest(name="Updates", description="d", position=4, forum_id=second, is_locked=True)
    )
    board = store.board_by_id(board_id)
    assert (board.name, board.description, board.position, board.forum.id, board.is_locked) == (
        "Updates",
        "d",
        4,
        second,
        True,
    )


def test_remove_board_deletes_topics_and_posts(store, connection):
    forum_id = store.create_forum(ForumRequest(name="General"))
    board_id = store.create_board(BoardRequest(name="News", forum_id=forum_id))
    kept_board = store.create_board(BoardRequest(name="Kept", forum_id=forum_id))
    user_id = _add_user(connection, "alice")
    _add_topic(connection, board_id, user_id)
    kept_topic = _add_topic(connection, kept_board, user_id)

    store.remove_board(board_id)

    with pytest.raises(NotFoundError):
        store.board_by_id(board_id)
    assert _column(connection, "SELECT id FROM topics") == [kept_topic]
    assert _column(connection, "SELECT topic_id FROM posts") == [kept_topic]


def test_remove_forum_deletes_its_boards(store, connection):
    forum_id = store.create_forum(ForumRequest(name="General"))
    board_id = store.create_board(BoardRequest(name="News", forum_id=forum_id))
    _add_topic(connection, board_id, _add_user(connection, "alice"))

    store.remove_forum(forum_id)

    assert store.forums() == []
    assert store.boards() == []
    assert _column(connection, "SELECT id FROM posts") == []


def test_seeded_key_is_listed(store):
    assert [key.key for key in store.keys()] == ["admin"]
    assert store.key_exists("admin") is True


def test_create_and_delete_key(store):
    store.create_key()
    created = [key for key in store.keys() if key.key != "admin"]
    assert len(created) == 1
    new_key = created[0]
    assert len(new_key.key) == 20
    assert isinstance(new_key.created_at, datetime)
    assert store.key_exists(new_key.key) is True

    store.delete_key(new_key.id)
    assert store.key_exists(new_key.key) is False
    assert [key.key for key in store.keys()] == ["admin"]


def test_used_key_is_not_listed(store, connection):
    user_id = _add_user(connection, "alice")
    with connection:
        connection.execute("UPDATE keys SET user_id = ? WHERE key = 'admin'", (user_id,))
    assert store.key_exists("admin") is False
    assert store.keys() == []