"""Typed views of submitted HTML form data."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from vpub.models import Board, Forum, User
from vpub.validation import ValidationError

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _value(data: Mapping[str, str], key: str) -> str:
    value = data.get(key)
    return "" if value is None else value


def _int(data: Mapping[str, str], key: str) -> int:
    """Parse a decimal field, giving 0 when absent or malformed."""
    text = _value(data, key)
    if not _INTEGER.fullmatch(text):
        return 0
    return max(_INT64_MIN, min(_INT64_MAX, int(text)))


@dataclass
class AccountForm:
    picture: str = ""
    picture_alt: str = ""
    about: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> AccountForm:
        return cls(
            picture=_value(data, "picture"),
            picture_alt=_value(data, "picture-alt"),
            about=_value(data, "about"),
        )


@dataclass
class AdminUserForm:
    username: str = ""
    about: str = ""
    picture: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> AdminUserForm:
        return cls(
            username=_value(data, "name"),
            about=_value(data, "about"),
            picture=_value(data, "picture"),
        )


@dataclass
class BoardForm:
    name: str = ""
    description: str = ""
    position: int = 0
    forums: list[Forum] = field(default_factory=list)
    forum_id: int = 0
    is_locked: bool = False

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> BoardForm:
        return cls(
            name=_value(data, "name"),
            description=_value(data, "description"),
            position=_int(data, "position"),
            forum_id=_int(data, "forumId"),
            is_locked=_value(data, "locked") == "true",
        )

    def merge(self, board: Board) -> Board:
        """Copy the form's fields onto ``board`` and return it."""
        board.name = self.name
        board.description = self.description
        board.position = self.position
        board.is_locked = self.is_locked
        board.forum = Forum(id=self.forum_id)
        return board


@dataclass
class ForumForm:
    name: str = ""
    is_locked: bool = False
    position: int = 0

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> ForumForm:
        return cls(
            name=_value(data, "name"),
            is_locked=_value(data, "locked") == "on",
            position=_int(data, "position"),
        )


@dataclass
class LoginForm:
    username: str = ""
    password: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> LoginForm:
        return cls(username=_value(data, "name"), password=_value(data, "password"))


@dataclass
class PostForm:
    subject: str = ""
    content: str = ""
    topic_id: int = 0

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> PostForm:
        return cls(
            subject=_value(data, "subject").strip(),
            content=_value(data, "content"),
            topic_id=_int(data, "topicId"),
        )


@dataclass
class ResetPasswordForm:
    password: str = ""
    confirm: str = ""
    hash: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> ResetPasswordForm:
        return cls(
            password=_value(data, "password"),
            confirm=_value(data, "confirm"),
            hash=_value(data, "hash"),
        )

    def validate(self) -> None:
        """Raise ValidationError unless the passwords match and are long enough."""
        if self.password != self.confirm:
            raise ValidationError("password doesn't match confirmation")
        if len(self.password.encode()) < 6:
            raise ValidationError("password needs to be at least 6 characters")


@dataclass
class SettingsForm:
    name: str = ""
    css: str = ""
    footer: str = ""
    per_page: int = 0
    url: str = ""
    lang: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> SettingsForm:
        return cls(
            name=_value(data, "name").strip(),
            css=_value(data, "css"),
            footer=_value(data, "footer"),
            url=_value(data, "url"),
            lang=_value(data, "lang"),
            per_page=_int(data, "per-page"),
        )


@dataclass
class TopicForm:
    id: int = 0
    board_id: int = 0
    post_form: PostForm = field(default_factory=PostForm)
    is_sticky: bool = False
    is_locked: bool = False
    boards: list[Board] = field(default_factory=list)
    new_board_id: int = 0

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> TopicForm:
        return cls(
            board_id=_int(data, "boardId"),
            post_form=PostForm.from_form(data),
            is_sticky=_value(data, "sticky") == "on",
            is_locked=_value(data, "locked") == "on",
            new_board_id=_int(data, "newBoardId"),
        )


@dataclass
class UserForm:
    username: str = ""
    password: str = ""
    confirm: str = ""
    key: str = ""

    @classmethod
    def from_form(cls, data: Mapping[str, str]) -> UserForm:
        return cls(
            username=_value(data, "name"),
            confirm=_value(data, "confirm"),
            password=_value(data, "password"),
            key=_value(data, "key"),
        )

    def validate(self) -> None:
        """Raise ValidationError if the password and its confirmation differ."""
        if self.password != self.confirm:
            raise ValidationError("Password doesn't match confirmation")

    def merge(self, user: User) -> User:
        """Copy the name and password onto ``user`` and return it."""
        user.name = self.username
        user.password = self.password
        return user