"""Tests for the osmlc CLI: arg parsing, exit codes, output, end-to-end."""

from __future__ import annotations

import argparse
import stat
from pathlib import Path

import pytest

from osml.cli import (
    CliOptions,
    build_parser,
    compile_file,
    main,
    parse_meta_arg,
)
from osml.plugins import default_registry

# ---------------------------------------------------------------------------
# Argument parsing helpers
# ---------------------------------------------------------------------------


class TestParseHelpers:
    def test_parse_meta_arg_simple(self) -> None:
        assert parse_meta_arg("viewport=width=device-width") == (
            "viewport",
            "width=device-width",
        )

    def test_parse_meta_arg_empty_value(self) -> None:
        assert parse_meta_arg("key=") == ("key", "")

    def test_parse_meta_arg_no_equals_raises(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_meta_arg("noequals")


# ---------------------------------------------------------------------------
# Arg parsing via build_parser
# ---------------------------------------------------------------------------


class TestArgParsing:
    def test_input_only(self) -> None:
        ns = build_parser().parse_args(["doc.osml"])
        assert ns.input == "doc.osml"
        assert ns.output is None
        assert ns.dry_run is False

    def test_output_flag(self) -> None:
        ns = build_parser().parse_args(["doc.osml", "-o", "out.html"])
        assert ns.output == "out.html"

    def test_css_js_meta_flags(self) -> None:
        ns = build_parser().parse_args(
            ["doc.osml", "--css", "s.css", "--js", "a.js", "--meta", "k=v"]
        )
        assert ns.css == ["s.css"]
        assert ns.js == ["a.js"]
        assert ns.meta == ["k=v"]

    def test_watch_debug_dry_run(self) -> None:
        ns = build_parser().parse_args(["doc.osml", "--watch", "--debug", "-d"])
        assert ns.watch is True
        assert ns.debug is True
        assert ns.dry_run is True

    def test_plugin_path_and_timeout(self) -> None:
        ns = build_parser().parse_args(
            ["doc.osml", "--plugin-path", "/tmp/plugins", "--plugin-timeout", "10"]
        )
        assert ns.plugin_path == ["/tmp/plugins"]
        assert ns.plugin_timeout == 10.0


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class TestExitCodes:
    def test_success(self, tmp_path: Path) -> None:
        doc = tmp_path / "ok.osml"
        doc.write_text("[title Hello]\n")
        assert main([str(doc), "-o", str(tmp_path / "out.html")]) == 0

    def test_parse_error_returns_1(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "bad.osml"
        doc.write_text("[title Hello\n")
        assert main([str(doc)]) == 1
        err = capsys.readouterr().err
        assert "unterminated" in err
        assert f"{doc}:1:1" in err

    def test_lex_error_returns_1(self, tmp_path: Path) -> None:
        doc = tmp_path / "bad.osml"
        doc.write_text("oops \\")
        assert main([str(doc)]) == 1

    def test_unknown_keyword_returns_2(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "plugin.osml"
        doc.write_text("[nope x]\n")
        assert main([str(doc)]) == 2
        assert "no plugin registered" in capsys.readouterr().err

    def test_render_error_returns_2(self, tmp_path: Path) -> None:
        doc = tmp_path / "list.osml"
        doc.write_text("++ too deep\n")
        assert main([str(doc)]) == 2

    def test_bad_meta_returns_2(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("x\n")
        assert main([str(doc), "--meta", "novalue"]) == 2

    def test_missing_input_returns_1(self, tmp_path: Path) -> None:
        assert main([str(tmp_path / "missing.osml")]) == 1

    def test_undecodable_input_returns_1(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_bytes(b"\xff\xfe bad")
        assert main([str(doc)]) == 1
        assert "error:" in capsys.readouterr().err

    def test_raising_plugin_returns_2(self, tmp_path: Path, capsys) -> None:
        script = tmp_path / "plugins" / "hello"
        script.parent.mkdir()
        script.write_text("#!/bin/sh\nexit 3\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        doc = tmp_path / "doc.osml"
        doc.write_text("[hello]\n")
        assert main([str(doc)]) == 2
        assert "hello" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class TestOutput:
    def test_stdout(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("[title Hello]\n")
        assert main([str(doc)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("<!DOCTYPE html>")
        assert "<h1>Hello</h1>" in out

    def test_output_file(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("*hi*\n")
        out = tmp_path / "out.html"
        assert main([str(doc), "-o", str(out)]) == 0
        assert "<b>hi</b>" in out.read_text()

    def test_dry_run_writes_nothing(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("[title Hello]\n")
        out = tmp_path / "out.html"
        assert main([str(doc), "-o", str(out), "--dry-run"]) == 0
        assert not out.exists()
        assert capsys.readouterr().out == ""

    def test_debug_dumps_ast(self, tmp_path: Path, capsys) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("[title Hello]\n")
        assert main([str(doc), "--debug", "-o", str(tmp_path / "out.html")]) == 0
        assert "Block [title]" in capsys.readouterr().err

    def test_css_js_meta(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.osml"
        doc.write_text("[title Test]\n")
        out = tmp_path / "out.html"
        args = [str(doc), "--css", "style.css", "--js", "app.js", "--meta", "author=Me"]
        assert main([*args, "-o", str(out)]) == 0
        html = out.read_text()
        assert '<link rel="stylesheet" href="style.css">' in html
        assert '<script src="app.js"></script>' in html
        assert '<meta name="author" content="Me">' in html

    def test_local_plugins_dir(self, tmp_path: Path) -> None:
        script = tmp_path / "plugins" / "hello"
        script.parent.mkdir()
        script.write_text('#!/bin/sh\ncat >/dev/null\necho "<p>hi</p>"\n')
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        doc = tmp_path / "doc.osml"
        doc.write_text("[hello]\n")
        out = tmp_path / "out.html"
        assert main([str(doc), "-o", str(out)]) == 0
        assert "<p>hi</p>" in out.read_text()


# ---------------------------------------------------------------------------
# compile_file smoke test
# ---------------------------------------------------------------------------


class TestCompileFile:
    def test_basic(self, tmp_path: Path) -> None:
        doc = tmp_path / "simple.osml"
        doc.write_text("[title Hello World]\n")
        opts = CliOptions(
            input_file=doc,
            output_file=None,
            css_files=[],
            js_files=[],
            meta_tags=[],
            plugin_paths=[],
            plugin_timeout=5.0,
            dry_run=False,
            watch=False,
            debug=False,
        )
        html = compile_file(opts, default_registry())
        assert "<h1>Hello World</h1>" in html
