"""AST node types for parsed OSML documents."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from osml.tokens import Span


class SpanKind(Enum):
    """Inline span kinds, valued by their HTML tag."""

    BOLD = "b"
    ITALIC = "i"
    UNDERLINE = "u"
    STRIKETHROUGH = "s"


@dataclass(frozen=True, slots=True)
class TextRun:
    """Literal text, escapes resolved and whitespace collapsed."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Break:
    """Blank line separating content inside a body."""

    span: Span


@dataclass(frozen=True, slots=True)
class InlineSpan:
    """Styled run produced from a matched pair of markers."""

    kind: SpanKind
    children: tuple[Node, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class ListItem:
    """A '+' or '=' prefixed line; depth is the '+' run length."""

    ordered: bool
    depth: int
    children: tuple[Node, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Block:
    """A [keyword ...] unit. keyword is None for anonymous blocks.

    text holds the body after the keyword with escapes resolved but no
    markup interpreted, for plugins that only want raw inner text.
    """

    keyword: str | None
    children: tuple[Node, ...]
    text: str
    span: Span


Node = Block | TextRun | InlineSpan | ListItem | Break


@dataclass(frozen=True, slots=True)
class Document:
    """Root document node."""

    children: tuple[Block, ...]
    span: Span


def plain_text(nodes: tuple[Node, ...] | list[Node]) -> str:
    """Concatenate the text content of nodes, dropping all styling."""
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, TextRun):
            parts.append(node.value)
        elif isinstance(node, Break):
            parts.append("\n")
        elif isinstance(node, ListItem):
            parts.append(plain_text(node.children))
            parts.append("\n")
        else:
            parts.append(plain_text(node.children))
    return "".join(parts)
