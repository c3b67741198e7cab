"""OSML markup language compiler."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from osml.plugins import PluginRegistry

__version__ = "0.1.0"


def compile(
    source: str,
    registry: PluginRegistry | None = None,
    filename: str = "input.osml",
    head_insert: str = "",
    body_insert: str = "",
) -> str:
    """Parse and render OSML source to a complete HTML page."""
    from osml.parser import parse
    from osml.plugins import default_registry
    from osml.render import render, render_page

    if registry is None:
        registry = default_registry()
    doc = parse(source, filename)
    return render_page(render(doc, registry, source), head_insert, body_insert)
