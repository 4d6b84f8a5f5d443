"""Domain records shared by the storage, validation and web layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import bcrypt

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass
class User:
    """A forum member; ``password`` is only set for requests, never stored."""

    id: int = 0
    name: str = ""
    password: str = ""
    hash: str = ""
    is_admin: bool = False
    about: str = ""
    picture: str = ""
    picture_alt: str = ""

    def matches_hash(self, hash: str) -> bool:
        """Return True when ``password`` matches the given bcrypt hash."""
        try:
            return bcrypt.checkpw(self.password.encode(), hash.encode())
        except ValueError:
            return False


@dataclass
class UserCreationRequest:
    """Data needed to register a user."""

    name: str = ""
    password: str = ""
    is_admin: bool = False


@dataclass
class Forum:
    """A top-level grouping of boards."""

    id: int = 0
    name: str = ""
    boards: list[Board] = field(default_factory=list)
    position: int = 0
    is_locked: bool = False


@dataclass
class ForumRequest:
    """Data needed to create or update a forum."""

    name: str = ""
    position: int = 0
    is_locked: bool = False


@dataclass
class Board:
    """A board inside a forum, holding topics."""

    id: int = 0
    name: str = ""
    description: str = ""
    topics: int = 0
    posts: int = 0
    updated_at: datetime = ZERO_TIME
    position: int = 0
    forum: Forum = field(default_factory=Forum)
    is_locked: bool = False


@dataclass
class BoardRequest:
    """Data needed to create or update a board."""

    name: str = ""
    description: str = ""
    is_locked: bool = False
    position: int = 0
    forum_id: int = 0


@dataclass
class Key:
    """A registration key."""

    id: int = 0
    key: str = ""
    created_at: datetime = ZERO_TIME


@dataclass
class Post:
    """A single message within a topic."""

    id: int = 0
    user: User = field(default_factory=User)
    subject: str = ""
    content: str = ""
    topic_id: int = 0
    created_at: datetime = ZERO_TIME
    updated_at: datetime = ZERO_TIME

    def date(self) -> str:
        """Creation day as YYYY-MM-DD."""
        return self.created_at.date().isoformat()

    def date_updated(self) -> str:
        """Last update day as YYYY-MM-DD."""
        return self.updated_at.date().isoformat()


@dataclass
class PostRequest:
    """Data needed to create or update a post."""

    subject: str = ""
    content: str = ""


@dataclass
class Settings:
    """Site-wide settings."""

    name: str = ""
    css: str = ""
    footer: str = ""
    per_page: int = 0
    url: str = ""
    lang: str = ""


@dataclass
class Topic:
    """A discussion thread; ``post`` is its opening post."""

    id: int = 0
    board_id: int = 0
    is_sticky: bool = False
    is_locked: bool = False
    posts: int = 0
    updated_at: datetime = ZERO_TIME
    post: Post = field(default_factory=Post)


@dataclass
class TopicRequest:
    """Data needed to create or update a topic."""

    board_id: int = 0
    is_sticky: bool = False
    is_locked: bool = False
    subject: str = ""
    content: str = ""