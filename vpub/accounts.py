"""Storage of user accounts and password checks."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import bcrypt

from vpub.database import NotFoundError, StoreError
from vpub.models import User, UserCreationRequest

BCRYPT_ROUNDS = 4

_USER_COLUMNS = "id, name, hash, about, is_admin, picture"


class UserNotFound(NotFoundError):
    """Raised when no user has the requested name or id."""

    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


class WrongPassword(StoreError):
    """Raised when a password does not match the stored hash."""

    def __init__(self, message: str = "wrong password") -> None:
        super().__init__(message)


class UserExists(StoreError):
    """Raised when registering a name that is already taken."""

    def __init__(self, message: str = "user already exists") -> None:
        super().__init__(message)


def hash_password(password: str) -> str:
    """Return a bcrypt hash of ``password`` at the minimum cost."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


@contextmanager
def _transaction(connection: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    connection.execute("BEGIN")
    try:
        yield connection
    except BaseException:
        connection.rollback()
        raise
    connection.commit()


class UserStore:
    """User accounts kept in the forum database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def _query_user(self, where: str, param: Any) -> User:
        row = self._connection.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE {where}", (param,)
        ).fetchone()
        if row is None:
            raise UserNotFound()
        return User(
            id=row["id"],
            name=row["name"],
            hash=row["hash"],
            about=row["about"],
            is_admin=bool(row["is_admin"]),
            picture=row["picture"],
        )

    def _exists(self, query: str, *params: Any) -> bool:
        return self._connection.execute(query, params).fetchone() is not None

    def has_admin(self) -> bool:
        return self._exists("SELECT 1 FROM users WHERE is_admin = 1 LIMIT 1")

    def user_hash_exists(self, hash: str) -> bool:
        return self._exists("SELECT 1 FROM users WHERE hash = ?", hash)

    def user_exists(self, name: str) -> bool:
        return self._exists("SELECT 1 FROM users WHERE name = lower(?)", name)

    def verify_user(self, user: User) -> User:
        """Return the stored user whose name and password match ``user``."""
        try:
            found = self.user_by_name(user.name)
        except NotFoundError:
            raise UserNotFound() from None
        if not user.matches_hash(found.hash):
            raise WrongPassword()
        return found

    def user_by_name(self, name: str) -> User:
        return self._query_user("name = lower(?)", name)

    def user_by_id(self, id: int) -> User:
        return self._query_user("id = ?", id)

    def create_user(self, key: str, request: UserCreationRequest) -> int:
        """Register a user, consuming the unused registration ``key``."""
        hashed = hash_password(request.password)
        try:
            with _transaction(self._connection) as connection:
                key_row = connection.execute(
                    "SELECT id FROM keys WHERE key = ? AND user_id IS NULL", (key,)
                ).fetchone()
                if key_row is None:
                    raise NotFoundError("key not found or already used")
                if connection.execute(
                    "SELECT 1 FROM users WHERE name = ?", (request.name,)
                ).fetchone():
                    raise UserExists()
                user_id = connection.execute(
                    "INSERT INTO users (name, hash, is_admin) VALUES (lower(?), ?, ?)",
                    (request.name, hashed, request.is_admin),
                ).lastrowid
                connection.execute(
                    "UPDATE keys SET user_id = ? WHERE id = ?", (user_id, key_row["id"])
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to create user: {exc}") from exc
        return user_id or 0

    def users(self) -> list[User]:
        rows = self._connection.execute("SELECT id, name, hash FROM users")
        return [User(id=row["id"], name=row["name"], hash=row["hash"]) for row in rows]

    def update_user(self, user: User) -> None:
        try:
            with self._connection:
                self._connection.execute(
                    "UPDATE users SET name = ?, about = ?, picture = ? WHERE id = ?",
                    (user.name, user.about, user.picture, user.id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to update user: {exc}") from exc

    def update_password(self, hash: str, user: User) -> None:
        """Replace the hash ``hash`` with a hash of ``user.password``."""
        new_hash = hash_password(user.password)
        try:
            with self._connection:
                self._connection.execute(
                    "UPDATE users SET hash = ? WHERE hash = ?", (new_hash, hash)
                )
        except sqlite3.Error as exc:
            raise StoreError(f"unable to update password: {exc}") from exc

    def remove_user(self, id: int) -> None:
        """Delete a user, the topics they started, their posts and their key."""
        try:
            with _transaction(self._connection) as connection:
                connection.execute("PRAGMA defer_foreign_keys = ON")
                topics = connection.execute(
                    "SELECT t.id AS topic_id, t.post_id FROM topics t "
                    "JOIN posts p ON p.id = t.post_id WHERE p.user_id = ?",
                    (id,),
                ).fetchall()
                for topic in topics:
                    connection.execute(
                        "DELETE FROM posts WHERE topic_id = ? AND id != ?",
                        (topic["topic_id"], topic["post_id"]),
                    )
                    connection.execute("DELETE FROM posts WHERE id = ?", (topic["post_id"],))
                connection.execute("DELETE FROM posts WHERE user_id = ?", (id,))
                connection.execute("DELETE FROM keys WHERE user_id = ?", (id,))
                connection.execute("DELETE FROM users WHERE id = ?", (id,))
        except sqlite3.Error as exc:
            raise StoreError(f"unable to remove user: {exc}") from exc