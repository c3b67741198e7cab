"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from osml.ast import Block, Document, Node, TextRun
from osml.lexer import tokenize
from osml.parser import parse
from osml.plugins import PluginRegistry, default_registry
from osml.render import render
from osml.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns a Document."""

    def _parse(source: str, filename: str = "test.osml") -> Document:
        return parse(source, filename)

    return _parse


@pytest.fixture
def compile_source():
    """Return a helper that compiles source to an HTML body fragment."""

    def _compile(source: str, registry: PluginRegistry | None = None) -> str:
        doc = parse(source, "test.osml")
        return render(doc, registry if registry is not None else default_registry(), source)

    return _compile


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def find_tokens(tokens: list[Token], tt: TokenType) -> list[Token]:
    """Return all tokens of the given type."""
    return [t for t in tokens if t.type == tt]


def assert_block(node: Node, keyword: str | None, num_children: int | None = None) -> Block:
    """Assert basic properties of a Block node and return it."""
    assert isinstance(node, Block), f"Expected Block, got {type(node).__name__}"
    assert node.keyword == keyword, f"Expected keyword {keyword!r}, got {node.keyword!r}"
    if num_children is not None:
        assert len(node.children) == num_children, (
            f"Expected {num_children} children, got {len(node.children)}"
        )
    return node


def text_of(nodes: tuple[Node, ...] | list[Node]) -> str:
    """Concatenate the direct TextRun children of a node sequence."""
    return "".join(n.value for n in nodes if isinstance(n, TextRun))
