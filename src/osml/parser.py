"""OSML parser: converts a token stream into an AST."""

from __future__ import annotations

from collections.abc import Iterable

from osml.ast import (
    Block,
    Break,
    Document,
    InlineSpan,
    ListItem,
    Node,
    SpanKind,
    TextRun,
    plain_text,
)
from osml.errors import ParseError
from osml.lexer import tokenize
from osml.tokens import LIST_MARKERS, SPAN_MARKERS, Position, Span, Token, TokenType

_SPAN_KINDS: dict[TokenType, SpanKind] = {
    TokenType.BOLD: SpanKind.BOLD,
    TokenType.ITALIC: SpanKind.ITALIC,
    TokenType.UNDERLINE: SpanKind.UNDERLINE,
    TokenType.STRIKE: SpanKind.STRIKETHROUGH,
}


class Parser:
    """Recursive descent parser for OSML token streams.

    Token ranges are half-open index pairs ``(start, stop)`` into the
    buffered token list. Brackets are matched once up front so every
    production can skip a nested block in one step.
    """

    def __init__(self, tokens: Iterable[Token], source: str, filename: str) -> None:
        self._tokens = list(tokens)
        self._source = source
        self._filename = filename
        self._match: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> Document:
        self._match_brackets()
        eof = len(self._tokens) - 1
        nodes = self._parse_body(0, eof)
        children = _group_top_level(nodes)
        span = Span(self._tokens[0].span.start, self._tokens[eof].span.end)
        return Document(tuple(children), span)

    def _match_brackets(self) -> None:
        stack: list[int] = []
        for idx, tok in enumerate(self._tokens):
            if tok.type == TokenType.LBRACKET:
                stack.append(idx)
            elif tok.type == TokenType.RBRACKET:
                if not stack:
                    raise self._error(
                        "unmatched ']' closes no block; use \\] for a literal bracket", tok.span
                    )
                self._match[stack.pop()] = idx
        if stack:
            tok = self._tokens[stack[-1]]
            raise self._error("unterminated block: '[' has no matching ']'", tok.span)

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _parse_block(self, open_idx: int) -> Block:
        close_idx = self._match[open_idx]
        pos = open_idx + 1

        keyword: str | None = None
        kw_end = self._scan_keyword(pos, close_idx)
        if kw_end is not None:
            keyword = "".join(t.value for t in self._tokens[pos:kw_end])
            pos = kw_end
            # One run of separating whitespace belongs to the keyword
            if self._tokens[pos].type == TokenType.WS:
                pos += 1

        text = "".join(t.value for t in self._tokens[pos:close_idx])
        children = self._parse_body(pos, close_idx)
        span = Span(self._tokens[open_idx].span.start, self._tokens[close_idx].span.end)
        return Block(keyword, tuple(children), text, span)

    def _scan_keyword(self, pos: int, close_idx: int) -> int | None:
        """Return the index just past a keyword starting at pos, or None.

        A keyword is a word (underscores allowed inside) directly followed
        by whitespace, a newline, or the closing bracket.
        """
        # A leading space forces an anonymous block: `[ just text]`, while
        # `[just text]` has keyword `just`.
        if self._tokens[pos].type != TokenType.WORD:
            return None
        end = pos
        while end < close_idx and self._tokens[end].type in (TokenType.WORD, TokenType.UNDERLINE):
            end += 1
        if end < close_idx and self._tokens[end].type not in (TokenType.WS, TokenType.NEWLINE):
            return None
        name = "".join(t.value for t in self._tokens[pos:end])
        if not all(ch.isalnum() or ch in "_-" for ch in name):
            return None
        return end

    # ------------------------------------------------------------------
    # Bodies: lines, paragraphs, list items
    # ------------------------------------------------------------------

    def _parse_body(self, start: int, stop: int) -> list[Node]:
        lines = self._split_lines(start, stop)
        nodes: list[Node] = []
        pending_break: Break | None = None
        idx = 0

        while idx < len(lines):
            line_start, line_stop = lines[idx]
            first = self._first_content(line_start, line_stop)

            if first is None:
                if nodes and pending_break is None:
                    pending_break = Break(self._tokens[line_start].span)
                idx += 1
                continue

            if self._tokens[first].type in LIST_MARKERS:
                indent = len(self._tokens[line_start].value) if first > line_start else 0
                item_stop = line_stop
                idx += 1
                while idx < len(lines) and self._is_continuation(*lines[idx], indent):
                    item_stop = lines[idx][1]
                    idx += 1
                segment: list[Node] = [self._parse_list_item(first, item_stop)]
            else:
                para_stop = line_stop
                idx += 1
                while idx < len(lines):
                    nxt = self._first_content(*lines[idx])
                    if nxt is None or self._tokens[nxt].type in LIST_MARKERS:
                        break
                    para_stop = lines[idx][1]
                    idx += 1
                segment = _trim(self._parse_inline(first, para_stop))

            if not segment:
                continue
            if pending_break is not None:
                nodes.append(pending_break)
                pending_break = None
            nodes.extend(segment)

        return nodes

    def _split_lines(self, start: int, stop: int) -> list[tuple[int, int]]:
        """Split a range at body-level newlines; nested blocks stay whole."""
        lines: list[tuple[int, int]] = []
        line_start = start
        idx = start
        while idx < stop:
            tok = self._tokens[idx]
            if tok.type == TokenType.LBRACKET:
                idx = self._match[idx] + 1
                continue
            if tok.type == TokenType.NEWLINE:
                lines.append((line_start, idx))
                line_start = idx + 1
            idx += 1
        lines.append((line_start, stop))
        return lines

    def _first_content(self, start: int, stop: int) -> int | None:
        for idx in range(start, stop):
            if self._tokens[idx].type != TokenType.WS:
                return idx
        return None

    def _is_continuation(self, start: int, stop: int, indent: int) -> bool:
        """An indented line deeper than its item's marker continues the item."""
        first = self._first_content(start, stop)
        if first is None or first == start:
            return False
        if self._tokens[first].type in LIST_MARKERS:
            return False
        return len(self._tokens[start].value) > indent

    def _parse_list_item(self, marker_idx: int, stop: int) -> ListItem:
        marker = self._tokens[marker_idx]
        ordered = marker.type == TokenType.ORDINAL
        # Ordered items never nest
        depth = 1 if ordered else marker.run
        children = _trim(self._parse_inline(marker_idx + 1, stop))
        end = self._tokens[stop - 1].span.end if stop > marker_idx + 1 else marker.span.end
        return ListItem(ordered, depth, tuple(children), Span(marker.span.start, end))

    # ------------------------------------------------------------------
    # Inline content
    # ------------------------------------------------------------------

    def _parse_inline(self, start: int, stop: int) -> list[Node]:
        result: list[Node] = []
        text_parts: list[str] = []
        text_start: Position | None = None
        text_end: Position | None = None

        def flush() -> None:
            nonlocal text_start, text_end
            if text_parts:
                value = "".join(text_parts)
                assert text_start is not None
                assert text_end is not None
                result.append(TextRun(value, Span(text_start, text_end)))
                text_parts.clear()
                text_start = None
                text_end = None

        def add_text(value: str, span: Span) -> None:
            nonlocal text_start, text_end
            if text_start is None:
                text_start = span.start
            text_parts.append(value)
            text_end = span.end

        def add_space(span: Span) -> None:
            nonlocal text_end
            if text_parts and text_parts[-1] == " ":
                text_end = span.end
                return
            add_text(" ", span)

        idx = start
        while idx < stop:
            tok = self._tokens[idx]

            if tok.type == TokenType.LBRACKET:
                flush()
                result.append(self._parse_block(idx))
                idx = self._match[idx] + 1
                continue

            if tok.type in SPAN_MARKERS:
                close_idx = self._find_close(idx, stop)
                if close_idx is None:
                    add_text(tok.value, tok.span)
                else:
                    flush()
                    children = self._parse_inline(idx + 1, close_idx)
                    span = Span(tok.span.start, self._tokens[close_idx].span.end)
                    result.append(InlineSpan(_SPAN_KINDS[tok.type], tuple(children), span))
                    idx = close_idx
                idx += 1
                continue

            if tok.type in (TokenType.WS, TokenType.NEWLINE):
                add_space(tok.span)
            else:
                # WORD, ESCAPE, and list markers that lost their line position
                add_text(tok.value, tok.span)
            idx += 1

        flush()
        return result

    def _find_close(self, open_idx: int, stop: int) -> int | None:
        """Find the next marker of the same kind and run, skipping nested blocks."""
        opener = self._tokens[open_idx]
        idx = open_idx + 1
        while idx < stop:
            tok = self._tokens[idx]
            if tok.type == TokenType.LBRACKET:
                idx = self._match[idx] + 1
                continue
            if tok.type == opener.type and tok.value == opener.value:
                return idx
            idx += 1
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, span: Span) -> ParseError:
        return ParseError(message, span, self._source)


def _trim(nodes: list[Node]) -> list[Node]:
    """Strip leading and trailing spaces from the outer text runs of a segment."""
    if nodes and isinstance(nodes[0], TextRun):
        first = nodes[0]
        value = first.value.lstrip(" ")
        nodes = ([TextRun(value, first.span)] if value else []) + nodes[1:]
    if nodes and isinstance(nodes[-1], TextRun):
        last = nodes[-1]
        value = last.value.rstrip(" ")
        nodes = nodes[:-1] + ([TextRun(value, last.span)] if value else [])
    return nodes


def _group_top_level(nodes: list[Node]) -> list[Block]:
    """Wrap loose top-level content in anonymous blocks."""
    children: list[Block] = []
    pending: list[Node] = []

    def flush() -> None:
        while pending and isinstance(pending[0], Break):
            pending.pop(0)
        while pending and isinstance(pending[-1], Break):
            pending.pop()
        loose = _trim(pending)
        if loose:
            span = Span(loose[0].span.start, loose[-1].span.end)
            children.append(Block(None, tuple(loose), plain_text(loose), span))
        pending.clear()

    for node in nodes:
        if isinstance(node, Block):
            flush()
            children.append(node)
        else:
            pending.append(node)
    flush()
    return children


def parse(source: str, filename: str = "input.osml") -> Document:
    """Convenience function: parse source text and return a Document AST."""
    tokens = tokenize(source, filename)
    return Parser(tokens, source, filename).parse()
