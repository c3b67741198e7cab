"""Plugin registry: keyword to renderer mapping, built once before compiling."""

from __future__ import annotations

import importlib.metadata
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from itertools import groupby
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

from osml.ast import Block, ListItem
from osml.errors import PluginError
from osml.external import discover_external
from osml.render import LIST_KEYWORD, escape_html
from osml.strings import strip_block_whitespace

if TYPE_CHECKING:
    from osml.render import Renderer

ENTRY_POINT_GROUP = "osml.plugins"


class Plugin(Protocol):
    """A block renderer. Returns an HTML fragment or raises PluginError."""

    def render(self, block: Block, renderer: Renderer) -> str: ...


# ---------------------------------------------------------------------------
# Plugin helpers and builtins
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ContainerPlugin:
    """Wrap the rendered children in a single HTML element."""

    tag: str
    css_class: str | None = None

    def render(self, block: Block, renderer: Renderer) -> str:
        cls = f' class="{escape_html(self.css_class)}"' if self.css_class else ""
        return f"<{self.tag}{cls}>{renderer.render_nodes(block.children)}</{self.tag}>"


@dataclass(frozen=True, slots=True)
class TextPlugin:
    """Adapt a plain ``str -> str`` function that takes the block's raw text."""

    func: Callable[[str], str]

    def render(self, block: Block, renderer: Renderer) -> str:
        return self.func(block.text.strip())


class CodePlugin:
    """Render raw block text as code, <pre> wrapped when it spans lines."""

    def render(self, block: Block, renderer: Renderer) -> str:
        text = strip_block_whitespace(block.text)
        if "\n" in text:
            return f"<pre><code>{escape_html(text)}</code></pre>"
        return f"<code>{escape_html(text.strip())}</code>"


class ListPlugin:
    """Render list items as nested lists; other children render in place."""

    def render(self, block: Block, renderer: Renderer) -> str:
        parts: list[str] = []
        for is_item, group in groupby(block.children, key=lambda n: isinstance(n, ListItem)):
            nodes = tuple(group)
            if is_item:
                parts.append(renderer.render_list(nodes))
            else:
                parts.append(renderer.render_nodes(nodes))
        return "".join(parts)


def _builtin_plugins() -> dict[str, Plugin]:
    return {
        "section": ContainerPlugin("section"),
        "title": ContainerPlugin("h1"),
        "code": CodePlugin(),
        LIST_KEYWORD: ListPlugin(),
    }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PluginRegistry:
    """Read-only keyword to plugin mapping, safe to share between compilations."""

    __slots__ = ("_plugins",)

    def __init__(self, plugins: Mapping[str, Plugin]) -> None:
        self._plugins = MappingProxyType(dict(plugins))

    def resolve(self, keyword: str) -> Plugin | None:
        """Return the plugin registered for keyword, or None."""
        return self._plugins.get(keyword)

    def keywords(self) -> tuple[str, ...]:
        return tuple(sorted(self._plugins))

    def __contains__(self, keyword: object) -> bool:
        return keyword in self._plugins

    def __iter__(self) -> Iterator[str]:
        return iter(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)


class RegistryBuilder:
    """Collect plugin registrations during setup, then freeze them.

    Builtins are registered first; a later registration for the same
    keyword replaces the earlier one.
    """

    def __init__(self, *, builtins: bool = True) -> None:
        self._plugins: dict[str, Plugin] = {}
        if builtins:
            for keyword, plugin in _builtin_plugins().items():
                self.register(keyword, plugin)

    def register(self, keyword: str, plugin: Plugin) -> RegistryBuilder:
        if not keyword or not all(ch.isalnum() or ch in "_-" for ch in keyword):
            raise PluginError(f"invalid plugin keyword {keyword!r}")
        self._plugins[keyword] = plugin
        return self

    def register_text(self, keyword: str, func: Callable[[str], str]) -> RegistryBuilder:
        """Register a simple plugin that maps raw inner text to HTML."""
        return self.register(keyword, TextPlugin(func))

    def register_container(
        self, keyword: str, tag: str, css_class: str | None = None
    ) -> RegistryBuilder:
        return self.register(keyword, ContainerPlugin(tag, css_class))

    def build(self) -> PluginRegistry:
        return PluginRegistry(self._plugins)


def default_registry() -> PluginRegistry:
    """Registry holding only the builtin plugins."""
    return RegistryBuilder().build()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_entry_points(builder: RegistryBuilder, group: str = ENTRY_POINT_GROUP) -> int:
    """Register plugins published as package entry points. Returns the count.

    An entry point may name a plugin instance or a plugin class, which is
    instantiated with no arguments. The entry point name is the keyword.
    """
    count = 0
    for ep in importlib.metadata.entry_points(group=group):
        try:
            obj = ep.load()
        except Exception as exc:
            raise PluginError(f"failed to load plugin '{ep.name}' ({ep.value}): {exc}") from exc
        plugin = obj() if isinstance(obj, type) else obj
        builder.register(ep.name, plugin)
        count += 1
    return count


def build_registry(
    plugin_dirs: Iterable[Path] = (),
    timeout: float = 5.0,
    *,
    entry_points: bool = True,
) -> PluginRegistry:
    """Builtins, then entry-point plugins, then executables from plugin_dirs.

    Later directories take precedence over earlier ones.
    """
    builder = RegistryBuilder()
    if entry_points:
        discover_entry_points(builder)
    for plugin in discover_external(plugin_dirs, timeout):
        builder.register(plugin.name, plugin)
    return builder.build()
