"""Build the page head insert from CLI and config options (CSS, JS, meta tags)."""

from __future__ import annotations

from osml.render import escape_html


def build_head_insert(
    css_files: list[str],
    js_files: list[str],
    meta_tags: list[tuple[str, str]],
) -> str:
    """Return <meta>, <link> and <script> tags, one per line.

    Returns an empty string if there is nothing to inject.
    """
    lines: list[str] = []

    for name, content in meta_tags:
        lines.append(f'<meta name="{escape_html(name)}" content="{escape_html(content)}">')

    for path in css_files:
        lines.append(f'<link rel="stylesheet" href="{escape_html(path)}">')

    for path in js_files:
        lines.append(f'<script src="{escape_html(path)}"></script>')

    return "".join(f"{line}\n" for line in lines)
