"""Error types with formatted source context."""

from __future__ import annotations

from osml.tokens import Position, Span


class OsmlError(Exception):
    """Base class for every error that aborts compilation of one document."""

    def __init__(self, message: str, span: Span | None = None, source: str = "") -> None:
        self.message = message
        self.span = span
        self.source = source
        super().__init__(self.format())

    def with_context(self, span: Span | None, source: str) -> OsmlError:
        """Fill in a missing span or source, returning self."""
        if self.span is None:
            self.span = span
        if not self.source:
            self.source = source
        self.args = (self.format(),)
        return self

    def format(self, filename: str = "input.osml") -> str:
        if self.span is None:
            return f"error: {self.message}\n  --> {filename}"

        lines = self.source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        # Build the source line (strip trailing newline for display)
        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )


class LexError(OsmlError):
    """Raised on the first lexing error, with position and source context."""

    def __init__(self, message: str, position: Position, source: str) -> None:
        self.position = position
        end = Position(position.line, position.column + 1, position.offset + 1)
        super().__init__(message, Span(position, end), source)


class ParseError(OsmlError):
    """Raised on the first parse error, with span and source context."""

    def __init__(self, message: str, span: Span, source: str) -> None:
        super().__init__(message, span, source)


class PluginError(OsmlError):
    """Raised for an unresolved block keyword or a failing plugin.

    Plugins may raise it with only a message; the renderer attaches the
    block's span before it propagates.
    """


class RenderError(OsmlError):
    """Raised when the tree violates a renderer invariant (list depth)."""
