"""Small helpers shared by the forum's pages: paging, breadcrumbs and dates."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby

from vpub.models import Board, Forum

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class Pagination:
    """Where a paged listing stands."""

    has_more: bool = False
    page: int = 1


@dataclass
class Navigation:
    """Breadcrumb trail: forum, board and topic title."""

    forum: Forum = field(default_factory=Forum)
    board: Board = field(default_factory=Board)
    topic: str = ""


def _plural(count: int, unit: str) -> str:
    if count == 1:
        return f"1 {unit} ago"
    return f"{count} {unit}s ago"


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Describe how long ago ``moment`` was, e.g. "3 hours ago"."""
    if now is None:
        now = datetime.now(moment.tzinfo)
    elapsed = now - moment
    seconds = elapsed.total_seconds()
    hours = seconds / 3600
    if seconds < 60:
        return _plural(int(seconds), "second")
    if seconds / 60 < 60:
        return _plural(int(seconds / 60), "minute")
    if hours < 24:
        return _plural(int(hours), "hour")
    if hours < 730:
        return _plural(int(hours) // 24, "day")
    if hours < 8760:
        return _plural(int(hours) // 730, "month")
    return _plural(int(hours) // 8760, "year")


def forums_from_boards(boards: Iterable[Board]) -> list[Forum]:
    """Group consecutive boards of the same forum into forums holding them."""
    forums = []
    for forum_id, group in groupby(boards, key=lambda board: board.forum.id):
        members = list(group)
        forums.append(Forum(id=forum_id, name=members[0].forum.name, boards=members))
    return forums


def route_id(value: str | None) -> int:
    """Parse a route identifier; anything invalid or negative becomes 0."""
    if value is None or not _INTEGER.fullmatch(value):
        return 0
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX or number < 0:
        return 0
    return number


def page_from_query(args: Mapping[str, Sequence[str] | str]) -> int:
    """Page number from query arguments; only single-character values are read."""
    values = args.get("page")
    if values is None:
        return 1
    if isinstance(values, str):
        values = [values]
    if not values:
        return 1
    first = values[0]
    if len(first.encode("utf-8")) != 1:
        return 1
    return int(first) if first.isdigit() else 0