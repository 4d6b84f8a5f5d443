"""Checks applied to user input before it reaches storage."""

from __future__ import annotations

import re
from typing import Any

from vpub.models import (
    BoardRequest,
    ForumRequest,
    PostRequest,
    TopicRequest,
    UserCreationRequest,
)

_USERNAME = re.compile(r"[a-z0-9_-]+")


class ValidationError(ValueError):
    """Raised when input does not meet the forum's rules."""


def _is_blank(value: str) -> bool:
    return not value.strip()


def validate_board_creation(store: Any, request: BoardRequest) -> None:
    """Check a new board's name is present and unused."""
    if _is_blank(request.name):
        raise ValidationError("Board name can't be empty")
    if store.board_name_exists(request.name):
        raise ValidationError("Board name already exists")


def validate_board_modification(store: Any, board_id: int, request: BoardRequest) -> None:
    """Check a board's new name is present and not used by another board."""
    if _is_blank(request.name):
        raise ValidationError("Board name can't be empty")
    if store.another_board_exists(board_id, request.name):
        raise ValidationError("Board name already exists")


def validate_forum_creation(store: Any, request: ForumRequest) -> None:
    """Check a new forum's name is present and unused."""
    if _is_blank(request.name):
        raise ValidationError("Forum name can't be empty")
    if store.forum_name_exists(request.name):
        raise ValidationError("Forum name already exists")


def validate_forum_modification(store: Any, forum_id: int, request: ForumRequest) -> None:
    """Check a forum's new name is present and not used by another forum."""
    if _is_blank(request.name):
        raise ValidationError("Forum name can't be empty")
    if store.another_forum_exists(forum_id, request.name):
        raise ValidationError("A forum with that name already exists")


def validate_post_request(request: PostRequest) -> None:
    """Check a post has a subject and content."""
    if _is_blank(request.subject):
        raise ValidationError("Post subject can't be empty")
    if _is_blank(request.content):
        raise ValidationError("Post content can't be empty")


def validate_topic_request(request: TopicRequest) -> None:
    """Check a topic has a subject and content."""
    if _is_blank(request.subject):
        raise ValidationError("Topic subject can't be empty")
    if _is_blank(request.content):
        raise ValidationError("Topic content can't be empty")


def validate_user_creation(store: Any, key: str, request: UserCreationRequest) -> None:
    """Check a registration: username rules, uniqueness and an unused key."""
    length = len(request.name.encode())
    if length < 3:
        raise ValidationError("Username needs to be at least 3 characters")
    if length > 20:
        raise ValidationError("Username should be 20 characters or less")
    if not _USERNAME.fullmatch(request.name):
        raise ValidationError("Only lowercase letters and digits are accepted for username")
    if store.user_exists(request.name):
        raise ValidationError("Username already exists")
    if not store.key_exists(key):
        raise ValidationError("Key not found or already used")