"""Storage of forums, boards, registration keys and site settings."""

from __future__ import annotations

import secrets
import sqlite3
import string
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from vpub.database import NotFoundError, StoreError
from vpub.models import ZERO_TIME, Board, BoardRequest, Forum, ForumRequest, Key, Settings

KEY_ALPHABET = string.ascii_lowercase + string.ascii_uppercase
KEY_LENGTH = 20

_BOARD_SUMMARY = """
SELECT board_id, forum_id, forum_name, board_name, description,
       topics_count, posts_count, updated_at
FROM forums_summary
"""


def random_key(length: int = KEY_LENGTH) -> str:
    """Return a random string of ASCII letters of the given length."""
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def _timestamp(value: Any) -> datetime:
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
    except BaseException:
        connection.rollback()
        raise
    connection.commit()


def _summary_board(row: sqlite3.Row) -> Board:
    return Board(
        id=row["board_id"],
        forum=Forum(id=row["forum_id"] or 0, name=row["forum_name"] or ""),
        name=row["board_name"],
        description=row["description"] or "",
        topics=row["topics_count"],
        posts=row["posts_count"],
        updated_at=_timestamp(row["updated_at"]),
    )


class CatalogStore:
    """Forums, boards, keys and settings kept in the forum database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def _exists(self, query: str, params: Sequence[Any]) -> bool:
        return self._connection.execute(query, params).fetchone() is not None

    def _write(self, message: str, query: str, params: Sequence[Any]) -> int:
        try:
            with self._connection:
                cursor = self._connection.execute(query, params)
        except sqlite3.Error as exc:
            raise StoreError(f"{message}{exc}") from exc
        return cursor.lastrowid or 0

    # Boards

    def board_by_id(self, id: int) -> Board:
        row = self._connection.execute(
            """
            SELECT b.id, b.name, b.description, b.position, b.forum_id,
                   f.is_locked AS forum_locked, b.is_locked AS board_locked, f.name AS forum_name
            FROM boards b JOIN forums f ON f.id = b.forum_id
            WHERE b.id = ?
            """,
            (id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"board {id} not found")
        return Board(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            position=row["position"],
            forum=Forum(
                id=row["forum_id"],
                name=row["forum_name"],
                is_locked=bool(row["forum_locked"]),
            ),
            is_locked=bool(row["board_locked"]),
        )

    def boards(self) -> list[Board]:
        return [_summary_board(row) for row in self._connection.execute(_BOARD_SUMMARY)]

    def boards_by_forum_id(self, id: int) -> list[Board]:
        rows = self._connection.execute(_BOARD_SUMMARY + "WHERE forum_id = ?", (id,))
        return [_summary_board(row) for row in rows]

    def create_board(self, request: BoardRequest) -> int:
        return self._write(
            "unable to create board: ",
            "INSERT INTO boards (name, description, position, forum_id, is_locked) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                request.name,
                request.description,
                request.position,
                request.forum_id,
                request.is_locked,
            ),
        )

    def update_board(self, id: int, request: BoardRequest) -> None:
        self._write(
            "unable to update board: ",
            "UPDATE boards SET name = ?, description = ?, position = ?, forum_id = ?, "
            "is_locked = ? WHERE id = ?",
            (
                request.name,
                request.description,
                request.position,
                request.forum_id,
                request.is_locked,
                id,
            ),
        )

    def board_name_exists(self, name: str) -> bool:
        return self._exists(
            "SELECT 1 FROM boards WHERE lower(name) = lower(?) LIMIT 1", (name,)
        )

    def another_board_exists(self, id: int, name: str) -> bool:
        return self._exists(
            "SELECT 1 FROM boards WHERE id != ? AND lower(name) = lower(?) LIMIT 1",
            (id, name),
        )

    def _delete_board(self, id: int) -> None:
        connection = self._connection
        connection.execute(
            "DELETE FROM posts WHERE topic_id IN (SELECT id FROM topics WHERE board_id = ?)",
            (id,),
        )
        connection.execute("DELETE FROM topics WHERE board_id = ?", (id,))
        connection.execute("DELETE FROM boards WHERE id = ?", (id,))

    def remove_board(self, id: int) -> None:
        """Delete a board together with its topics and posts."""
        try:
            with _transaction(self._connection) as connection:
                connection.execute("PRAGMA defer_foreign_keys = ON")
                self._delete_board(id)
        except sqlite3.Error as exc:
            raise StoreError(f"unable to remove board: {exc}") from exc

    # Forums

    def create_forum(self, request: ForumRequest) -> int:
        return self._write(
            f'store: unable to create forum "{request.name}": ',
            "INSERT INTO forums (name, position, is_locked) VALUES (?, ?, ?)",
            (request.name, request.position, request.is_locked),
        )

    def forums(self) -> list[Forum]:
        rows = self._connection.execute(
            "SELECT id, name, position, is_locked FROM forums ORDER BY position"
        )
        return [
            Forum(
                id=row["id"],
                name=row["name"],
                position=row["position"],
                is_locked=bool(row["is_locked"]),
            )
            for row in rows
        ]

    def forum_by_id(self, id: int) -> Forum:
        row = self._connection.execute(
            "SELECT id, name, position, is_locked FROM forums WHERE id = ?", (id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"forum {id} not found")
        return Forum(
            id=row["id"],
            name=row["name"],
            position=row["position"],
            is_locked=bool(row["is_locked"]),
        )

    def update_forum(self, forum_id: int, request: ForumRequest) -> None:
        self._write(
            "unable to update forum: ",
            "UPDATE forums SET name = ?, position = ?, is_locked = ? WHERE id = ?",
            (request.name, request.position, request.is_locked, forum_id),
        )

    def forum_name_exists(self, name: str) -> bool:
        return self._exists(
            "SELECT 1 FROM forums WHERE lower(name) = lower(?) LIMIT 1", (name,)
        )

    def another_forum_exists(self, id: int, name: str) -> bool:
        return self._exists(
            "SELECT 1 FROM forums WHERE id != ? AND lower(name) = lower(?) LIMIT 1",
            (id, name),
        )

    def remove_forum(self, id: int) -> None:
        """Delete a forum and every board in it."""
        try:
            with _transaction(self._connection) as connection:
                connection.execute("PRAGMA defer_foreign_keys = ON")
                board_ids = [
                    row["id"]
                    for row in connection.execute(
                        "SELECT id FROM boards WHERE forum_id = ?", (id,)
                    ).fetchall()
                ]
                for board_id in board_ids:
                    self._delete_board(board_id)
                connection.execute("DELETE FROM forums WHERE id = ?", (id,))
        except sqlite3.Error as exc:
            raise StoreError(f"unable to remove forum: {exc}") from exc

    # Keys

    def create_key(self) -> None:
        self._write(
            "unable to create key: ", "INSERT INTO keys (key) VALUES (?)", (random_key(),)
        )

    def keys(self) -> list[Key]:
        rows = self._connection.execute(
            "SELECT id, key, created_at FROM keys WHERE user_id IS NULL "
            "ORDER BY created_at DESC, id DESC"
        )
        return [
            Key(id=row["id"], key=row["key"], created_at=_timestamp(row["created_at"]))
            for row in rows
        ]

    def delete_key(self, id: int) -> None:
        self._write("unable to delete key: ", "DELETE FROM keys WHERE id = ?", (id,))

    def key_exists(self, key: str) -> bool:
        return self._exists(
            "SELECT 1 FROM keys WHERE key = ? AND user_id IS NULL", (key,)
        )

    # Settings

    def settings(self) -> Settings:
        row = self._connection.execute(
            "SELECT name, css, footer, per_page, url, lang FROM settings"
        ).fetchone()
        if row is None:
            raise NotFoundError("settings not found")
        return Settings(
            name=row["name"],
            css=row["css"],
            footer=row["footer"],
            per_page=row["per_page"],
            url=row["url"],
            lang=row["lang"],
        )

    def update_settings(self, settings: Settings) -> None:
        self._write(
            "unable to update settings: ",
            "UPDATE settings SET name = ?, css = ?, footer = ?, per_page = ?, url = ?, lang = ?",
            (
                settings.name,
                settings.css,
                settings.footer,
                settings.per_page,
                settings.url,
                settings.lang,
            ),
        )