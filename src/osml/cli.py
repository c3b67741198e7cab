"""Command-line interface for compiling a single OSML file (osmlc)."""

from __future__ import annotations

import argparse
import sys
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from osml.errors import LexError, OsmlError, ParseError
from osml.plugins import PluginRegistry, build_registry

CONFIG_NAME = "osml.toml"


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    css_files: list[str]
    js_files: list[str]
    meta_tags: list[tuple[str, str]]
    plugin_paths: list[Path]
    plugin_timeout: float
    dry_run: bool
    watch: bool
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="osmlc",
        description="OSML markup language compiler",
    )
    p.add_argument("input", help="Input .osml file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--css",
        action="append",
        default=[],
        metavar="FILE",
        help="CSS file to link (repeatable)",
    )
    p.add_argument(
        "--js",
        action="append",
        default=[],
        metavar="FILE",
        help="JS file to include (repeatable)",
    )
    p.add_argument(
        "--meta",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Meta tag to add (repeatable)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help=f"Config file (default: auto-discover {CONFIG_NAME})",
    )
    p.add_argument(
        "--plugin-path",
        action="append",
        default=[],
        metavar="DIR",
        help="Extra plugin search directory (repeatable)",
    )
    p.add_argument(
        "--plugin-timeout",
        type=float,
        default=None,
        metavar="SECS",
        help="External plugin timeout in seconds (default: 5.0)",
    )
    p.add_argument("-d", "--dry-run", action="store_true", help="Compile but do not write output")
    p.add_argument("--watch", action="store_true", help="Watch for changes and recompile")
    p.add_argument("--debug", action="store_true", help="Dump AST to stderr")
    return p


def parse_meta_arg(s: str) -> tuple[str, str]:
    """Parse a NAME=VALUE string into (name, value) for meta tags."""
    if "=" not in s:
        raise argparse.ArgumentTypeError(f"invalid meta format (expected NAME=VALUE): {s}")
    name, _, value = s.partition("=")
    return name, value


def load_config(config_path: Path | None, base_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else base_dir / CONFIG_NAME

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def config_head(config: dict[str, Any]) -> tuple[list[str], list[str], list[tuple[str, str]]]:
    """Extract (css, js, meta) from the [head] table of a config."""
    css_files: list[str] = []
    js_files: list[str] = []
    meta_tags: list[tuple[str, str]] = []
    head = config.get("head")
    if isinstance(head, dict):
        if isinstance(head.get("css"), list):
            css_files.extend(str(f) for f in head["css"])
        if isinstance(head.get("js"), list):
            js_files.extend(str(f) for f in head["js"])
        if isinstance(head.get("meta"), dict):
            meta_tags.extend((str(k), str(v)) for k, v in head["meta"].items())
    return css_files, js_files, meta_tags


def config_plugins(config: dict[str, Any]) -> tuple[list[Path], float]:
    """Extract (paths, timeout) from the [plugins] table of a config."""
    paths: list[Path] = []
    timeout = 5.0
    plugins = config.get("plugins")
    if isinstance(plugins, dict):
        if isinstance(plugins.get("paths"), list):
            paths.extend(Path(p) for p in plugins["paths"])
        if isinstance(plugins.get("timeout"), (int, float)):
            timeout = float(plugins["timeout"])
    return paths, timeout


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    css_files, js_files, meta_tags = config_head(config)
    css_files.extend(args.css)
    js_files.extend(args.js)
    for raw in args.meta:
        meta_tags.append(parse_meta_arg(raw))

    plugin_paths, plugin_timeout = config_plugins(config)
    plugin_paths = [p if p.is_absolute() else input_dir / p for p in plugin_paths]
    plugin_paths.extend(Path(p) for p in args.plugin_path)
    # The document's own plugins/ directory takes precedence
    plugin_paths.append(input_dir / "plugins")
    if args.plugin_timeout is not None:
        plugin_timeout = args.plugin_timeout

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        css_files=css_files,
        js_files=js_files,
        meta_tags=meta_tags,
        plugin_paths=plugin_paths,
        plugin_timeout=plugin_timeout,
        dry_run=args.dry_run,
        watch=args.watch,
        debug=args.debug,
    )


def load_registry(options: CliOptions) -> PluginRegistry:
    """Build the plugin registry once, before any file is compiled."""
    return build_registry(options.plugin_paths, options.plugin_timeout)


def compile_file(options: CliOptions, registry: PluginRegistry) -> str:
    """Read an OSML file and compile it to an HTML page."""
    import osml
    from osml.debug import dump_ast
    from osml.inject import build_head_insert
    from osml.parser import parse

    source = options.input_file.read_text(encoding="utf-8")
    filename = str(options.input_file)

    if options.debug:
        dump_ast(parse(source, filename))

    head = build_head_insert(options.css_files, options.js_files, options.meta_tags)
    return osml.compile(source, registry, filename, head_insert=head)


def write_output(options: CliOptions, html: str) -> None:
    if options.dry_run:
        return
    if options.output_file:
        options.output_file.write_text(html, encoding="utf-8")
    else:
        sys.stdout.write(html)
        sys.stdout.flush()


def watch_loop(options: CliOptions, registry: PluginRegistry) -> None:
    """Poll input file for changes, recompile on each modification."""
    last_mtime = 0.0
    print(f"Watching {options.input_file} for changes...", file=sys.stderr)
    try:
        while True:
            try:
                mtime = options.input_file.stat().st_mtime
            except OSError:
                time.sleep(0.5)
                continue
            if mtime != last_mtime:
                last_mtime = mtime
                try:
                    write_output(options, compile_file(options, registry))
                    print(f"Compiled {options.input_file}", file=sys.stderr)
                except OsmlError as exc:
                    print(exc.format(str(options.input_file)), file=sys.stderr)
                except (OSError, UnicodeDecodeError) as exc:
                    print(f"error: {options.input_file}: {exc}", file=sys.stderr)
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        registry = load_registry(options)
    except OsmlError as exc:
        print(exc.format(), file=sys.stderr)
        return 2

    if options.watch:
        watch_loop(options, registry)
        return 0

    try:
        html = compile_file(options, registry)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: {options.input_file}: {exc}", file=sys.stderr)
        return 1
    except (LexError, ParseError) as exc:
        print(exc.format(str(options.input_file)), file=sys.stderr)
        return 1
    except OsmlError as exc:
        print(exc.format(str(options.input_file)), file=sys.stderr)
        return 2

    write_output(options, html)
    return 0
