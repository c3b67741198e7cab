"""External plugin discovery and invocation (JSON stdin, HTML stdout)."""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from osml.errors import PluginError

if TYPE_CHECKING:
    from osml.ast import Block
    from osml.render import Renderer


@dataclass(frozen=True, slots=True)
class ExternalPlugin:
    """A block renderer implemented by an executable.

    The executable receives ``{"keyword", "text", "html"}`` as JSON on
    stdin, where ``html`` is the block's children already rendered, and
    writes the HTML fragment for the whole block to stdout.
    """

    name: str
    path: Path
    timeout: float = 5.0

    def render(self, block: Block, renderer: Renderer) -> str:
        payload = {
            "keyword": block.keyword,
            "text": block.text.strip(),
            "html": renderer.render_nodes(block.children),
        }

        try:
            result = subprocess.run(
                [str(self.path)],
                input=json.dumps(payload),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise PluginError(f"plugin '{self.name}' timed out after {self.timeout}s") from None
        except OSError as exc:
            raise PluginError(f"plugin '{self.name}' could not be run: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.strip()
            msg = f"plugin '{self.name}' failed (exit {result.returncode})"
            if stderr:
                msg += f": {stderr}"
            raise PluginError(msg)

        return result.stdout.rstrip("\n")


def discover_external(dirs: Iterable[Path], timeout: float = 5.0) -> list[ExternalPlugin]:
    """Find executable files in dirs; each one's stem becomes its keyword.

    Missing directories are skipped. Order follows dirs, then file name.
    """
    plugins: list[ExternalPlugin] = []
    for d in dirs:
        if not d.is_dir():
            continue
        for path in sorted(d.iterdir()):
            if path.is_file() and _is_executable(path):
                plugins.append(ExternalPlugin(path.stem, path, timeout))
    return plugins


def _is_executable(path: Path) -> bool:
    """Check whether a path is an executable file."""
    return os.access(path, os.X_OK)
