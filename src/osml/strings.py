"""Whitespace trimming for the raw text of code blocks."""

from __future__ import annotations

import textwrap


def strip_block_whitespace(content: str) -> str:
    """Trim the raw text of a block for display as code.

    A blank first line (the rest of the line holding the keyword) and a
    blank last line (the indentation before the closing bracket) are
    dropped, then the common indentation of the remaining lines is removed.
    """
    lines = content.split("\n")
    if lines and _is_blank(lines[0]):
        lines.pop(0)
    if lines and _is_blank(lines[-1]):
        lines.pop()
    return textwrap.dedent("\n".join(lines))


def _is_blank(line: str) -> bool:
    return not line.strip(" \t")
