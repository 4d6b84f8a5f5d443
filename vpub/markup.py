"""Render the forum's lightweight markup to HTML."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

_BLOCKQUOTE = re.compile(r"^> (.*)$")
_PRE = re.compile(r"^```.*$")
_BULLET = re.compile(r"^\* (.*)$")
_URL = re.compile(
    r"https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)",
    re.ASCII,
)
_IMAGE = re.compile(r"!\[(.*?)]\((.*?)\)")
_LINK = re.compile(r"\[(.*?)]\((.*?)\)")
_BOLD = re.compile(r"\*\*(.*?)\*\*")
_ITALICS = re.compile(r"\*(.*?)\*")
_TABLE_ROW = re.compile(r"^\|[\t\n\f\r ].+[\t\n\f\r ]\|$")
_TABLE_SEPARATOR = re.compile(r"(:?-.-+:?)")
_CODE = re.compile(r"`(.*)`")
_STRIKETHROUGH = re.compile(r"~~(.*?)~~")

_ESCAPES = str.maketrans(
    {"&": "&amp;", "'": "&#39;", "<": "&lt;", ">": "&gt;", '"': "&#34;"}
)


def _escape(text: str) -> str:
    return text.translate(_ESCAPES)


def _substitute(
    target: str, matches: Iterable[re.Match[str]], render: Callable[[re.Match[str]], str]
) -> str:
    """Replace the first occurrence of each match's text in ``target``."""
    for match in list(matches):
        target = target.replace(match[0], render(match), 1)
    return target


def _links(text: str) -> str:
    sane = _escape(text)
    if _IMAGE.search(text) or _LINK.search(text):
        sane = _substitute(
            sane, _IMAGE.finditer(text), lambda m: f'<img src="{m[2]}" alt="{m[1]}"/>'
        )
        sane = _substitute(
            sane,
            _LINK.finditer(sane),
            lambda m: f'<a href="{m[2]}" target="_blank">{m[1]}</a>',
        )
    elif _URL.search(text):
        sane = _substitute(
            sane,
            _URL.finditer(text),
            lambda m: f'<a href="{m[0]}" target="_blank">{m[0]}</a>',
        )
    return sane


def _wrap_matches(pattern: re.Pattern[str], tag: str, text: str) -> str:
    return _substitute(text, pattern.finditer(text), lambda m: f"<{tag}>{m[1]}</{tag}>")


def _decorate(text: str) -> str:
    """Escape a line and apply links, bold, italics, code and strikethrough."""
    sane = _links(text)
    sane = _wrap_matches(_BOLD, "b", sane)
    sane = _wrap_matches(_ITALICS, "i", sane)
    sane = _wrap_matches(_CODE, "code", sane)
    return _wrap_matches(_STRIKETHROUGH, "s", sane)


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8", "surrogatepass"))


class _Renderer:
    """Line-by-line state machine producing HTML fragments."""

    def __init__(self, wrap: bool) -> None:
        self.wrap = wrap
        self.out: list[str] = []
        self.pre_mode = False
        self.ul_mode = False
        self.table_mode = False
        self.table_header = ""
        self.header_built = False
        self.tbody_open = False
        self.table: list[str] = []
        self.centered: list[int] = []
        self.right_aligned: list[int] = []

    def close_list(self) -> None:
        if self.ul_mode:
            self.out.append("</ul>")
            self.ul_mode = False

    def write_cells(self, line: str) -> None:
        for position, cell in enumerate(line.split(" | ")):
            cell = cell.strip("|")
            aligned = False
            if position in self.centered:
                self.table.append(f'<td align="center">{cell}</td>')
                aligned = True
            if position in self.right_aligned:
                self.table.append(f'<td align="right">{cell}</td>')
                aligned = True
            if not aligned:
                self.table.append(f"<td>{cell}</td>")

    def table_line(self, line: str, is_last: bool) -> None:
        is_separator = False
        for position, match in enumerate(_TABLE_SEPARATOR.finditer(line)):
            is_separator = True
            text = match[0]
            if text.startswith(":") and text.endswith("-:"):
                self.centered.append(position)
            elif text.startswith("-") and text.endswith("-:"):
                self.right_aligned.append(position)

        if not self.header_built:
            self.table.append("<table><thead><tr>")
            self.write_cells(self.table_header)
            self.table.append("</tr></thead>")
            self.header_built = True

        if not is_separator and _byte_length(line) > 2:
            if not self.tbody_open:
                self.table.append("<tbody>")
                self.tbody_open = True
            self.table.append("<tr>")
            self.write_cells(line)
            self.table.append("</tr>")

        if is_last:
            self.table_mode = False

        if (not is_separator and not _TABLE_ROW.search(line)) or not self.table_mode:
            self.table_mode = False
            self.tbody_open = False
            self.header_built = False
            self.table.append("</tbody></table>")
            self.out.append("".join(self.table))
            self.table.clear()

    def line(self, line: str, is_last: bool) -> None:
        if line.startswith("----"):
            self.out.append("<hr>")
            return

        if line.startswith("#"):
            level = len(line) - len(line.lstrip("#"))
            if level == len(line):
                level = 0
            if 1 <= level <= 5:
                self.out.append(f"<h{level + 1}>{line[level:]}</h{level + 1}>")
            return

        if self.table_mode:
            self.table_line(line, is_last)
            return

        if self.pre_mode:
            if _PRE.search(line):
                self.out.append("</pre>")
                self.pre_mode = False
            else:
                self.out.append(_escape(line))
            return

        if _TABLE_ROW.search(line):
            self.table_mode = True
            self.table_header = line
        elif quote := _BLOCKQUOTE.search(line):
            self.close_list()
            self.out.append("<blockquote>" + _escape(quote[1]) + "</blockquote>")
        elif _PRE.search(line):
            self.close_list()
            self.out.append("<pre>")
            self.pre_mode = True
        elif bullet := _BULLET.search(line):
            item = _decorate(bullet[1])
            if self.ul_mode:
                self.out.append("<li>" + item + "</li>")
            else:
                self.out.append("<ul>\n<li>" + item + "</li>")
                self.ul_mode = True
        else:
            self.close_list()
            sane = _decorate(line)
            if line:
                self.out.append(f"<p>{sane}</p>" if self.wrap else sane)


def convert(text: str, wrap: bool) -> str:
    """Convert forum markup to HTML; ``wrap`` puts plain lines in paragraphs."""
    lines = text.replace("\r\n", "\n").split("\n")
    renderer = _Renderer(wrap)
    last = len(lines) - 1
    for index, line in enumerate(lines):
        renderer.line(line, index == last)
    renderer.close_list()
    return "\n".join(renderer.out)