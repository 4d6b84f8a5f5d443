"""Storage of topics and the posts within them."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

from vpub.catalog import CatalogStore
from vpub.database import NOW, NotFoundError, StoreError
from vpub.models import ZERO_TIME, Post, PostRequest, Topic, TopicRequest, User

T = TypeVar("T")

_POST_COLUMNS = "topic_id, post_id, subject, content, created_at, updated_at, user_id, name"


def _moment(value: Any) -> datetime:
    if value is None:
        return ZERO_TIME
    if isinstance(value, datetime):
        moment = value
    else:
        if isinstance(value, bytes):
            value = value.decode()
        moment = datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@contextmanager
def _transaction(connection: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block in an explicit transaction, committing or rolling back."""
    connection.execute("BEGIN")
    try:
        yield connection
        connection.commit()
    except BaseException:
        connection.rollback()
        raise


def _post(row: sqlite3.Row, profile: bool = False) -> Post:
    user = User(id=row["user_id"] or 0, name=row["name"] or "")
    if profile:
        user.picture = row["picture"] or ""
        user.about = row["about"] or ""
    return Post(
        id=row["post_id"],
        user=user,
        subject=row["subject"],
        content=row["content"],
        topic_id=row["topic_id"] or 0,
        created_at=_moment(row["created_at"]),
        updated_at=_moment(row["updated_at"]),
    )


def _summary_topic(row: sqlite3.Row) -> Topic:
    return Topic(
        id=row["topic_id"],
        posts=row["posts_count"],
        updated_at=_moment(row["updated_at"]),
        is_sticky=bool(row["is_sticky"]),
        post=Post(
            subject=row["subject"] or "",
            content=row["content"] or "",
            created_at=_moment(row["created_at"]),
            user=User(id=row["user_id"] or 0, name=row["name"] or ""),
        ),
    )


class ContentStore:
    """Topics and posts kept in the forum database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._catalog = CatalogStore(connection)

    def _paged(
        self,
        query: str,
        params: Sequence[Any],
        page: int,
        build: Callable[[sqlite3.Row], T],
    ) -> tuple[list[T], bool]:
        """Fetch one page of rows; the flag tells whether another page follows."""
        per_page = self._catalog.settings().per_page
        offset = per_page * (page - 1)
        limit = per_page + 1
        if offset < 0:
            raise StoreError("OFFSET must not be negative")
        if limit < 0:
            raise StoreError("LIMIT must not be negative")
        rows = self._connection.execute(
            query + " LIMIT ? OFFSET ?", (*params, limit, offset)
        ).fetchall()
        items = [build(row) for row in rows]
        if len(items) > per_page:
            return items[:per_page], True
        return items, False

    # Posts

    def posts_by_topic_id(self, id: int) -> list[Post]:
        """Every post of a topic, oldest first, with author profiles."""
        rows = self._connection.execute(
            f"SELECT {_POST_COLUMNS}, picture, about FROM posts_full "
            "WHERE topic_id = ? ORDER BY created_at, post_id",
            (id,),
        )
        return [_post(row, profile=True) for row in rows]

    def posts(self, page: int) -> tuple[list[Post], bool]:
        """One page of all posts, newest first."""
        return self._paged(
            f"SELECT {_POST_COLUMNS} FROM posts_full ORDER BY created_at DESC, post_id DESC",
            (),
            page,
            _post,
        )

    def posts_by_user_id(self, id: int, page: int) -> tuple[list[Post], bool]:
        """One page of a user's posts, newest first."""
        return self._paged(
            f"SELECT {_POST_COLUMNS} FROM posts_full WHERE user_id = ? "
            "ORDER BY created_at DESC, post_id DESC",
            (id,),
            page,
            _post,
        )

    def create_post(self, user_id: int, topic_id: int, request: PostRequest) -> int:
        """Add a reply to a topic; locked topics refuse replies from non-admins."""
        try:
            with self._connection:
                cursor = self._connection.execute(
                    "INSERT INTO posts (subject, content, user_id, topic_id) VALUES (?, ?, ?, ?)",
                    (request.subject, request.content, user_id, topic_id),
                )
                if cursor.rowcount == 0:
                    raise StoreError("unable to create post: post rejected")
        except sqlite3.Error as exc:
            raise StoreError(f"unable to create post: {exc}") from exc
        return cursor.lastrowid or 0

    def post_by_id(self, id: int) -> Post:
        row = self._connection.execute(
            f"SELECT {_POST_COLUMNS}, picture, about FROM posts_full WHERE post_id = ?",
            (id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"post {id} not found")
        return _post(row, profile=True)

    def delete_post(self, post: Post) -> None:
        """Delete ``post`` if ``post.user`` wrote it or is an administrator."""
        try:
            with self._connection:
                self._connection.execute(
                    "DELETE FROM posts WHERE id = ? AND (user_id = ? OR "
                    "coalesce((SELECT is_admin FROM users WHERE id = ?), 0))",
                    (post.id, post.user.id, post.user.id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to delete post: {exc}") from exc

    def update_post(self, id: int, user_id: int, request: PostRequest) -> None:
        """Edit a post if ``user_id`` wrote it or is an administrator."""
        try:
            with self._connection:
                self._connection.execute(
                    f"UPDATE posts SET subject = ?, content = ?, updated_at = {NOW} "
                    "WHERE id = ? AND (user_id = ? OR "
                    "coalesce((SELECT is_admin FROM users WHERE id = ?), 0))",
                    (request.subject, request.content, id, user_id, user_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to update post: {exc}") from exc

    def newest_post_from_topic(self, topic_id: int) -> int:
        row = self._connection.execute(
            "SELECT id FROM posts WHERE topic_id = ? ORDER BY created_at DESC, id DESC",
            (topic_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"topic {topic_id} has no posts")
        return row["id"]

    # Topics

    def create_topic(self, user_id: int, request: TopicRequest) -> int:
        """Create a topic together with its opening post; return the topic id."""
        try:
            with _transaction(self._connection) as connection:
                topic_id = connection.execute(
                    "INSERT INTO topics (is_sticky, is_locked, board_id, post_id) "
                    "VALUES (?, ?, ?, -1)",
                    (request.is_sticky, request.is_locked, request.board_id),
                ).lastrowid
                cursor = connection.execute(
                    "INSERT INTO posts (subject, content, topic_id, user_id) VALUES (?, ?, ?, ?)",
                    (request.subject, request.content, topic_id, user_id),
                )
                if cursor.rowcount == 0:
                    raise StoreError("unable to create topic: post rejected")
                connection.execute(
                    "UPDATE topics SET post_id = ? WHERE id = ?", (cursor.lastrowid, topic_id)
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to create topic: {exc}") from exc
        return topic_id or 0

    def update_topic(self, id: int, request: TopicRequest) -> None:
        """Change a topic's flags and board and edit its opening post."""
        try:
            with _transaction(self._connection) as connection:
                cursor = connection.execute(
                    "UPDATE topics SET is_locked = ?, is_sticky = ?, board_id = ? WHERE id = ?",
                    (request.is_locked, request.is_sticky, request.board_id, id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"topic {id} not found")
                post_id = connection.execute(
                    "SELECT post_id FROM topics WHERE id = ?", (id,)
                ).fetchone()["post_id"]
                connection.execute(
                    f"UPDATE posts SET subject = ?, content = ?, updated_at = {NOW} WHERE id = ?",
                    (request.subject, request.content, post_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to update topic: {exc}") from exc

    def topics_by_board_id(self, board_id: int, page: int) -> tuple[list[Topic], bool]:
        """One page of a board's topics, sticky ones first, then most recent."""
        return self._paged(
            "SELECT topic_id, subject, content, posts_count, updated_at, created_at, "
            "user_id, name, is_sticky FROM topics_summary WHERE board_id = ? "
            "ORDER BY is_sticky DESC, updated_at DESC, topic_id DESC",
            (board_id,),
            page,
            _summary_topic,
        )

    def topic_by_id(self, id: int) -> Topic:
        row = self._connection.execute(
            "SELECT topic_id, posts_count, is_sticky, is_locked, updated_at, board_id, "
            "post_id, subject FROM topics_summary WHERE topic_id = ?",
            (id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"topic {id} not found")
        return Topic(
            id=row["topic_id"],
            posts=row["posts_count"],
            is_sticky=bool(row["is_sticky"]),
            is_locked=bool(row["is_locked"]),
            updated_at=_moment(row["updated_at"]),
            board_id=row["board_id"],
            post=Post(id=row["post_id"], subject=row["subject"] or ""),
        )

    def newest_topic_from_board(self, board_id: int) -> int:
        row = self._connection.execute(
            "SELECT id FROM topics WHERE board_id = ? ORDER BY updated_at DESC, id DESC",
            (board_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"board {board_id} has no topics")
        return row["id"]