"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Structural
    LBRACKET = auto()  # [
    RBRACKET = auto()  # ]

    # Inline span markers (value holds the full run)
    BOLD = auto()  # *
    ITALIC = auto()  # /
    UNDERLINE = auto()  # _
    STRIKE = auto()  # ~~

    # List markers, only at line start
    BULLET = auto()  # +, ++, +++ ...
    ORDINAL = auto()  # =

    # Content
    WORD = auto()  # run of ordinary characters
    ESCAPE = auto()  # value is the resolved character

    # Whitespace
    WS = auto()  # horizontal whitespace (spaces/tabs)
    NEWLINE = auto()  # \n or \r\n

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with resolved value and original source text."""

    type: TokenType
    value: str
    raw: str
    span: Span

    @property
    def run(self) -> int:
        """Length of a marker run (``+++`` is 3)."""
        return len(self.value)


SPAN_MARKERS: frozenset[TokenType] = frozenset(
    {TokenType.BOLD, TokenType.ITALIC, TokenType.UNDERLINE, TokenType.STRIKE}
)
LIST_MARKERS: frozenset[TokenType] = frozenset({TokenType.BULLET, TokenType.ORDINAL})

# Characters a backslash can escape
ESCAPABLE = frozenset("[]*/_~+=\\")

# Characters that end a WORD run anywhere in a line
_WORD_STOP = frozenset("[]*/_~\\ \t\r\n\0")


def is_word_char(ch: str) -> bool:
    """Return True if ch can continue a WORD token."""
    return ch not in _WORD_STOP
