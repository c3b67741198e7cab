"""Test external plugin discovery and invocation."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from osml.errors import PluginError
from osml.external import ExternalPlugin, discover_external
from osml.plugins import RegistryBuilder, build_registry


def _make_plugin_script(path: Path, body: str) -> None:
    """Write a small executable plugin script."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)


class TestDiscovery:
    def test_executables_found(self, tmp_path: Path) -> None:
        _make_plugin_script(tmp_path / "greet", 'echo "hello"')
        plugins = discover_external([tmp_path])
        assert [p.name for p in plugins] == ["greet"]
        assert plugins[0].path == tmp_path / "greet"

    def test_stem_is_keyword(self, tmp_path: Path) -> None:
        _make_plugin_script(tmp_path / "shout.sh", "cat")
        assert [p.name for p in discover_external([tmp_path])] == ["shout"]

    def test_non_executable_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "noexec"
        path.write_text("#!/bin/sh\necho hi\n")
        # Do NOT chmod +x
        assert discover_external([tmp_path]) == []

    def test_missing_dir_skipped(self, tmp_path: Path) -> None:
        assert discover_external([tmp_path / "nope"]) == []

    def test_sorted_by_name(self, tmp_path: Path) -> None:
        for name in ("b", "a", "c"):
            _make_plugin_script(tmp_path / name, "cat")
        assert [p.name for p in discover_external([tmp_path])] == ["a", "b", "c"]

    def test_timeout_carried(self, tmp_path: Path) -> None:
        _make_plugin_script(tmp_path / "x", "cat")
        assert discover_external([tmp_path], timeout=2.5)[0].timeout == 2.5

    def test_later_dir_wins(self, tmp_path: Path) -> None:
        first = tmp_path / "first"
        second = tmp_path / "second"
        _make_plugin_script(first / "x", "echo one")
        _make_plugin_script(second / "x", "echo two")
        registry = build_registry([first, second], entry_points=False)
        plugin = registry.resolve("x")
        assert isinstance(plugin, ExternalPlugin)
        assert plugin.path == second / "x"

    def test_external_shadows_builtin(self, tmp_path: Path, compile_source) -> None:
        _make_plugin_script(tmp_path / "title", 'echo "<h2>custom</h2>"')
        registry = build_registry([tmp_path], entry_points=False)
        assert compile_source("[title x]", registry) == "<h2>custom</h2>"


class TestInvocation:
    def test_output_used(self, tmp_path: Path, compile_source) -> None:
        _make_plugin_script(tmp_path / "greet", 'cat >/dev/null\necho "<em>hello</em>"')
        registry = build_registry([tmp_path], entry_points=False)
        assert compile_source("[greet x]", registry) == "<em>hello</em>"

    def test_payload(self, tmp_path: Path, compile_source) -> None:
        _make_plugin_script(tmp_path / "echo", "cat")
        registry = build_registry([tmp_path], entry_points=False)
        html = compile_source("[echo *hi*]", registry)
        assert '"keyword": "echo"' in html
        assert '"text": "*hi*"' in html
        assert '"html": "<b>hi</b>"' in html

    def test_nonzero_exit(self, tmp_path: Path, compile_source) -> None:
        _make_plugin_script(tmp_path / "bad", "echo boom >&2\nexit 3")
        registry = build_registry([tmp_path], entry_points=False)
        with pytest.raises(PluginError) as exc_info:
            compile_source("[bad x]", registry)
        assert "exit 3" in exc_info.value.message
        assert "boom" in exc_info.value.message
        assert exc_info.value.span is not None

    def test_timeout(self, tmp_path: Path, compile_source) -> None:
        _make_plugin_script(tmp_path / "slow", "exec sleep 5")
        registry = build_registry([tmp_path], timeout=0.2, entry_points=False)
        with pytest.raises(PluginError) as exc_info:
            compile_source("[slow x]", registry)
        assert "timed out" in exc_info.value.message

    def test_missing_executable(self, tmp_path: Path, compile_source) -> None:
        plugin = ExternalPlugin("gone", tmp_path / "gone")
        registry = RegistryBuilder().register("gone", plugin).build()
        with pytest.raises(PluginError) as exc_info:
            compile_source("[gone x]", registry)
        assert "could not be run" in exc_info.value.message
