"""HTML renderer: walks a parsed Document and produces HTML."""

from __future__ import annotations

from itertools import groupby
from typing import TYPE_CHECKING

from osml.ast import Block, Break, Document, InlineSpan, ListItem, Node, TextRun, plain_text
from osml.errors import OsmlError, PluginError, RenderError
from osml.tokens import Span

if TYPE_CHECKING:
    from osml.plugins import PluginRegistry

# Registry keyword of the renderer that receives every run of list items
LIST_KEYWORD = "list"


def render(doc: Document, registry: PluginRegistry, source: str = "") -> str:
    """Render a parsed Document to an HTML body fragment."""
    return Renderer(registry, source).render_document(doc)


def render_page(body: str, head_insert: str = "", body_insert: str = "") -> str:
    """Wrap a rendered body fragment in a complete HTML page."""
    parts: list[str] = ["<!DOCTYPE html>\n", "<html>\n", "<head>\n"]
    parts.append('<meta charset="utf-8">\n')
    if head_insert:
        parts.append(head_insert)
        if not head_insert.endswith("\n"):
            parts.append("\n")
    parts.append("</head>\n")
    parts.append("<body>\n")
    parts.append(body_insert)
    if body:
        parts.append(body)
        parts.append("\n")
    parts.append("</body>\n")
    parts.append("</html>\n")
    return "".join(parts)


# ---------------------------------------------------------------------------
# HTML escaping
# ---------------------------------------------------------------------------


def escape_html(text: str) -> str:
    """Escape text for HTML body content and attribute values."""
    result: list[str] = []
    for ch in text:
        if ch == "&":
            result.append("&amp;")
        elif ch == "<":
            result.append("&lt;")
        elif ch == ">":
            result.append("&gt;")
        elif ch == '"':
            result.append("&quot;")
        else:
            result.append(ch)
    return "".join(result)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class Renderer:
    """Depth-first HTML renderer bound to one registry and one source text.

    Plugins receive the renderer so they can render their block's children.
    """

    def __init__(self, registry: PluginRegistry, source: str = "") -> None:
        self._registry = registry
        self._source = source

    def render_document(self, doc: Document) -> str:
        return "".join(self.render_node(block) for block in doc.children)

    def render_nodes(self, nodes: tuple[Node, ...]) -> str:
        """Render a child sequence; runs of list items go to the list plugin."""
        parts: list[str] = []
        for is_item, group in groupby(nodes, key=lambda n: isinstance(n, ListItem)):
            if is_item:
                parts.append(self._render_list_run(tuple(group)))
            else:
                parts.extend(self.render_node(node) for node in group)
        return "".join(parts)

    def render_node(self, node: Node) -> str:
        if isinstance(node, TextRun):
            return escape_html(node.value)
        if isinstance(node, InlineSpan):
            tag = node.kind.value
            return f"<{tag}>{self.render_nodes(node.children)}</{tag}>"
        if isinstance(node, Break):
            return "<br><br>"
        if isinstance(node, ListItem):
            return self._render_list_run((node,))
        return self._render_block(node)

    def render_list(self, items: tuple[ListItem, ...]) -> str:
        """Build nested <ul>/<ol> markup from a flat run of list items.

        Consecutive items with the same ordered flag and depth share one
        list; a deeper run nests inside the preceding item's <li>.
        """
        parts: list[str] = []
        idx = 0
        while idx < len(items):
            if items[idx].depth != 1:
                raise self._depth_error(items[idx], 1)
            html, idx = self._render_list_level(items, idx, 1)
            parts.append(html)
        return "".join(parts)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _render_list_level(
        self, items: tuple[ListItem, ...], start: int, depth: int
    ) -> tuple[str, int]:
        ordered = items[start].ordered
        tag = "ol" if ordered else "ul"
        parts: list[str] = [f"<{tag}>"]
        idx = start
        while idx < len(items) and items[idx].depth == depth and items[idx].ordered == ordered:
            item = items[idx]
            idx += 1
            nested: list[str] = []
            while idx < len(items) and items[idx].depth > depth:
                if items[idx].depth != depth + 1:
                    raise self._depth_error(items[idx], depth + 1)
                html, idx = self._render_list_level(items, idx, depth + 1)
                nested.append(html)
            parts.append(f"<li>{self.render_nodes(item.children)}{''.join(nested)}</li>")
        parts.append(f"</{tag}>")
        return "".join(parts), idx

    def _depth_error(self, item: ListItem, expected: int) -> RenderError:
        marker = "+" * item.depth
        return RenderError(
            f"list item '{marker}' at depth {item.depth} skips a level "
            f"(expected depth {expected} or less)",
            item.span,
            self._source,
        )

    def _render_list_run(self, items: tuple[ListItem, ...]) -> str:
        span = Span(items[0].span.start, items[-1].span.end)
        block = Block(LIST_KEYWORD, items, plain_text(items), span)
        return self._invoke(LIST_KEYWORD, block)

    def _render_block(self, block: Block) -> str:
        if block.keyword is None:
            return self.render_nodes(block.children)
        return self._invoke(block.keyword, block)

    def _invoke(self, keyword: str, block: Block) -> str:
        plugin = self._registry.resolve(keyword)
        if plugin is None:
            raise PluginError(
                f"no plugin registered for block keyword '{keyword}'", block.span, self._source
            )
        try:
            return plugin.render(block, self)
        except PluginError as exc:
            exc.with_context(block.span, self._source)
            raise
        except OsmlError:
            raise
        except Exception as exc:
            raise PluginError(
                f"plugin '{keyword}' failed: {exc}", block.span, self._source
            ) from exc
