"""OSML lexer: converts source text into a lazy token stream."""

from __future__ import annotations

from collections.abc import Iterator

from osml.errors import LexError
from osml.tokens import ESCAPABLE, Position, Span, Token, TokenType, is_word_char

_SPAN_MARKER_TYPES: dict[str, TokenType] = {
    "*": TokenType.BOLD,
    "/": TokenType.ITALIC,
    "_": TokenType.UNDERLINE,
}


class Lexer:
    """Tokenize OSML source text into a stream of Token objects.

    Iterating a Lexer consumes it; the stream cannot be restarted.
    """

    def __init__(self, source: str, filename: str = "input.osml") -> None:
        self._source = source
        self._filename = filename
        self._pos = 0
        self._line = 1
        self._col = 1
        # True until the first non-blank character of each line
        self._line_start = True

    def __iter__(self) -> Iterator[Token]:
        while self._pos < len(self._source):
            tok = self._next_token()
            if tok.type not in (TokenType.WS, TokenType.NEWLINE):
                self._line_start = False
            elif tok.type == TokenType.NEWLINE:
                self._line_start = True
            yield tok

        pos = self._current_pos()
        yield Token(TokenType.EOF, "", "", Span(pos, pos))

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _make(self, tt: TokenType, value: str, raw: str, start: Position) -> Token:
        return Token(tt, value, raw, Span(start, self._current_pos()))

    def _error(self, message: str, pos: Position | None = None) -> LexError:
        if pos is None:
            pos = self._current_pos()
        return LexError(message, pos, self._source)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _next_token(self) -> Token:
        ch = self._peek()
        start = self._current_pos()

        if ch == "\0":
            raise self._error("NUL character in source")

        if ch == "[":
            self._advance()
            return self._make(TokenType.LBRACKET, "[", "[", start)

        if ch == "]":
            self._advance()
            return self._make(TokenType.RBRACKET, "]", "]", start)

        if ch == "\\":
            return self._lex_escape()

        if ch == "\n":
            self._advance()
            return self._make(TokenType.NEWLINE, "\n", "\n", start)

        if ch == "\r" and self._peek(1) == "\n":
            self._advance()
            self._advance()
            return self._make(TokenType.NEWLINE, "\n", "\r\n", start)

        if ch in " \t":
            return self._lex_ws()

        if ch in _SPAN_MARKER_TYPES:
            return self._lex_run(ch, _SPAN_MARKER_TYPES[ch])

        if ch == "~":
            if self._peek(1) == "~":
                self._advance()
                self._advance()
                return self._make(TokenType.STRIKE, "~~", "~~", start)
            # A lone tilde is plain text
            self._advance()
            return self._make(TokenType.WORD, "~", "~", start)

        if self._line_start and ch == "+":
            return self._lex_run("+", TokenType.BULLET)

        if self._line_start and ch == "=":
            self._advance()
            return self._make(TokenType.ORDINAL, "=", "=", start)

        return self._lex_word()

    def _lex_ws(self) -> Token:
        start = self._current_pos()
        raw = []
        while self._pos < len(self._source) and self._peek() in " \t":
            raw.append(self._advance())
        text = "".join(raw)
        return self._make(TokenType.WS, text, text, start)

    def _lex_run(self, ch: str, tt: TokenType) -> Token:
        start = self._current_pos()
        chars = []
        while self._pos < len(self._source) and self._peek() == ch:
            chars.append(self._advance())
        text = "".join(chars)
        return self._make(tt, text, text, start)

    def _lex_word(self) -> Token:
        start = self._current_pos()
        chars = [self._advance()]
        while self._pos < len(self._source):
            ch = self._peek()
            if not is_word_char(ch):
                break
            chars.append(self._advance())
        text = "".join(chars)
        return self._make(TokenType.WORD, text, text, start)

    # ------------------------------------------------------------------
    # Escapes
    # ------------------------------------------------------------------

    def _lex_escape(self) -> Token:
        start = self._current_pos()
        self._advance()  # consume backslash

        if self._pos >= len(self._source):
            raise self._error("unexpected end of input after '\\'", start)

        ch = self._peek()
        if ch in ESCAPABLE:
            self._advance()
            return self._make(TokenType.ESCAPE, ch, f"\\{ch}", start)

        # Not an escape sequence: the backslash is literal text
        return self._make(TokenType.WORD, "\\", "\\", start)


def tokenize(source: str, filename: str = "input.osml") -> Iterator[Token]:
    """Convenience function: return a lazy token iterator over source text."""
    return iter(Lexer(source, filename))
