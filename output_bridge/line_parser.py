"""Parsing of the producer's ``name = value`` line protocol."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Union

START_KEYWORD = "mame_start"
STOP_KEYWORD = "mame_stop"

_ALLOWED_PUNCTUATION = frozenset("_.")


@dataclass(frozen=True)
class Update:
    """A state change for one output channel."""

    name: str
    value: int


@dataclass(frozen=True)
class ControlEvent:
    """The producer announced a new session title."""

    title: str


@dataclass(frozen=True)
class Noop:
    """A line that carries nothing to relay."""


NOOP = Noop()

ParseResult = Union[Update, ControlEvent, Noop]


def sanitize(text: str) -> str:
    """Keep ASCII letters, digits, underscore and period; drop everything else."""
    return "".join(ch for ch in text if (ch.isascii() and ch.isalnum()) or ch in _ALLOWED_PUNCTUATION)


def parse_int(text: str) -> int:
    """Parse the leading digit run of ``text``; anything non-numeric is 0."""
    digits = []
    for ch in text:
        if not ch.isdigit():
            break
        digits.append(ch)
    if not digits:
        return 0
    return int("".join(digits))


def parse_line(line: str) -> ParseResult:
    name_part, sep, value_part = line.partition("=")
    if not sep:
        return NOOP
    name = sanitize(name_part)
    value = sanitize(value_part)
    if name == START_KEYWORD:
        return ControlEvent(title=value)
    if name == STOP_KEYWORD:
        # Stop is inferred from connection loss instead.
        return NOOP
    if not name:
        return NOOP
    return Update(name=name, value=parse_int(value))


class LineBuffer:
    """Accumulates stream bytes and splits off complete terminator-delimited lines."""

    def __init__(self, terminator: str = "\r", encoding: str = "utf-8") -> None:
        if not terminator:
            raise ValueError("Line terminator must not be empty")
        self._terminator = terminator.encode(encoding)
        self._encoding = encoding
        self._buffer = b""

    @property
    def pending(self) -> bytes:
        return self._buffer

    def feed(self, data: bytes) -> List[str]:
        """Append ``data`` and return every complete, non-empty line it finishes."""
        self._buffer += data
        lines: List[str] = []
        while self._terminator in self._buffer:
            raw, self._buffer = self._buffer.split(self._terminator, 1)
            if not raw:
                continue
            lines.append(raw.decode(self._encoding, errors="replace"))
        return lines

    def clear(self) -> None:
        self._buffer = b""
