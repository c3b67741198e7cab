"""--debug AST dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from osml.ast import Block, Break, Document, InlineSpan, ListItem, Node, TextRun


def dump_ast(doc: Document, *, file: TextIO | None = None) -> None:
    """Print a human-readable AST tree to *file* (default: stderr)."""
    if file is None:
        file = sys.stderr
    file.write("Document\n")
    for child in doc.children:
        _dump_node(child, 1, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_node(node: Node, depth: int, f: TextIO) -> None:
    if isinstance(node, TextRun):
        f.write(f"{_indent(depth)}Text({node.value!r})\n")
    elif isinstance(node, Break):
        f.write(f"{_indent(depth)}Break\n")
    elif isinstance(node, InlineSpan):
        f.write(f"{_indent(depth)}Span {node.kind.name.lower()}\n")
        _dump_children(node.children, depth + 1, f)
    elif isinstance(node, ListItem):
        marker = "=" if node.ordered else "+" * node.depth
        f.write(f"{_indent(depth)}ListItem {marker}\n")
        _dump_children(node.children, depth + 1, f)
    elif isinstance(node, Block):
        label = f"[{node.keyword}]" if node.keyword is not None else "[anonymous]"
        f.write(f"{_indent(depth)}Block {label}\n")
        _dump_children(node.children, depth + 1, f)


def _dump_children(children: tuple[Node, ...], depth: int, f: TextIO) -> None:
    for child in children:
        _dump_node(child, depth, f)
