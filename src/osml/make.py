"""Project build tool (osmlmk): create, build, purge, and live-rebuild projects.

A project is a directory holding ``src/`` (``.osml`` sources), ``static/``
(assets copied verbatim) and ``dist/`` (generated output). Sources map
path-for-path into ``dist/`` with the ``.html`` extension; assets land in
``dist/static/``.
"""

from __future__ import annotations

import argparse
import shutil
import sys
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

import osml
from osml.cli import config_head, config_plugins, load_config
from osml.errors import OsmlError
from osml.inject import build_head_insert
from osml.plugins import PluginRegistry, build_registry

SRC_DIR = "src"
STATIC_DIR = "static"
DIST_DIR = "dist"
SOURCE_SUFFIX = ".osml"


@dataclass(frozen=True, slots=True)
class ProjectOptions:
    """Project settings merged from osml.toml and CLI flags."""

    root: Path
    head_insert: str = ""
    plugin_paths: tuple[Path, ...] = ()
    plugin_timeout: float = 5.0
    excluded: frozenset[Path] = frozenset()
    workers: int = 4
    interval: float = 0.5
    debounce: float = 0.2
    dry_run: bool = False


@dataclass
class BuildReport:
    """Outcome of a build; failed documents do not stop the others."""

    compiled: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, Exception]] = field(default_factory=list)
    copied: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def project_options(
    root: Path, config_path: Path | None = None, *, dry_run: bool = False
) -> ProjectOptions:
    """Read osml.toml from the project root (or config_path)."""
    config = load_config(config_path, root)

    css_files, js_files, meta_tags = config_head(config)
    plugin_paths, plugin_timeout = config_plugins(config)
    paths = [p if p.is_absolute() else root / p for p in plugin_paths]
    paths.append(root / "plugins")

    excluded: set[Path] = set()
    workers = 4
    build = config.get("build")
    if isinstance(build, dict):
        if isinstance(build.get("excluded"), list):
            excluded.update((root / str(p)).resolve() for p in build["excluded"])
        if isinstance(build.get("workers"), int) and build["workers"] > 0:
            workers = build["workers"]

    interval = 0.5
    debounce = 0.2
    live = config.get("live")
    if isinstance(live, dict):
        if isinstance(live.get("interval"), (int, float)):
            interval = float(live["interval"])
        if isinstance(live.get("debounce"), (int, float)):
            debounce = float(live["debounce"])

    return ProjectOptions(
        root=root,
        head_insert=build_head_insert(css_files, js_files, meta_tags),
        plugin_paths=tuple(paths),
        plugin_timeout=plugin_timeout,
        excluded=frozenset(excluded),
        workers=workers,
        interval=interval,
        debounce=debounce,
        dry_run=dry_run,
    )


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def create_project(root: Path) -> None:
    """Create src/, static/, dist/ and dist/static/; existing ones are kept."""
    for sub in (SRC_DIR, STATIC_DIR, DIST_DIR, f"{DIST_DIR}/{STATIC_DIR}"):
        (root / sub).mkdir(parents=True, exist_ok=True)


def purge_project(root: Path) -> None:
    """Delete all generated output, then restore the empty scaffold."""
    dist = root / DIST_DIR
    if dist.exists():
        shutil.rmtree(dist)
    create_project(root)


def list_sources(options: ProjectOptions) -> list[Path]:
    src = options.root / SRC_DIR
    if not src.is_dir():
        return []
    return sorted(
        p
        for p in src.rglob(f"*{SOURCE_SUFFIX}")
        if p.is_file() and p.resolve() not in options.excluded
    )


def output_path(root: Path, source: Path) -> Path:
    """Map src/a/b.osml to dist/a/b.html."""
    rel = source.relative_to(root / SRC_DIR)
    return root / DIST_DIR / rel.with_suffix(".html")


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def compile_source(source: Path, registry: PluginRegistry, head_insert: str = "") -> str:
    """Compile one source file to an HTML page. Touches no shared state."""
    text = source.read_text(encoding="utf-8")
    return osml.compile(text, registry, str(source), head_insert=head_insert)


def build_project(options: ProjectOptions, registry: PluginRegistry) -> BuildReport:
    """Compile every source on a worker pool, then sync static assets."""
    create_project(options.root)
    report = BuildReport()
    sources = list_sources(options)

    with ThreadPoolExecutor(max_workers=options.workers) as pool:
        futures = [
            pool.submit(compile_source, source, registry, options.head_insert)
            for source in sources
        ]
        for source, future in zip(sources, futures):
            _finish(options, source, future, report)

    sync_statics(options, report)
    return report


def _finish(
    options: ProjectOptions, source: Path, future: Future[str], report: BuildReport
) -> None:
    """Write one compiled result, or record its failure."""
    rel = source.relative_to(options.root)
    try:
        html = future.result()
    except OsmlError as exc:
        report.failed.append((source, exc))
        print(exc.format(str(rel)), file=sys.stderr)
        return
    except (OSError, UnicodeDecodeError) as exc:
        report.failed.append((source, exc))
        print(f"error: {rel}: {exc}", file=sys.stderr)
        return

    dest = output_path(options.root, source)
    if not options.dry_run:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(html, encoding="utf-8")
    report.compiled.append(source)
    print(f"OK: {rel} --> {dest.relative_to(options.root)}", file=sys.stderr)


def sync_statics(options: ProjectOptions, report: BuildReport) -> None:
    """Copy static/ into dist/static/ byte-for-byte and drop stale copies."""
    static = options.root / STATIC_DIR
    target = options.root / DIST_DIR / STATIC_DIR

    wanted: set[Path] = set()
    if static.is_dir():
        for path in sorted(static.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(static)
            wanted.add(rel)
            dest = target / rel
            if not options.dry_run:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(path, dest)
            report.copied.append(dest)

    if target.is_dir():
        for path in sorted(target.rglob("*")):
            if path.is_file() and path.relative_to(target) not in wanted:
                if not options.dry_run:
                    path.unlink()
                report.removed.append(path)
                print(f"OK: {path.relative_to(options.root)} --> removed", file=sys.stderr)


# ---------------------------------------------------------------------------
# Live rebuild
# ---------------------------------------------------------------------------


class LiveBuilder:
    """Recompile changed sources independently; the newest change per path wins.

    Submitting a path that already has a job in flight cancels that job,
    or, if it is already running, drops its result when it finishes.
    """

    def __init__(
        self, options: ProjectOptions, registry: PluginRegistry, executor: Executor
    ) -> None:
        self._options = options
        self._registry = registry
        self._executor = executor
        self._jobs: dict[Path, Future[str]] = {}
        self.superseded = 0

    def submit(self, source: Path) -> None:
        previous = self._jobs.pop(source, None)
        if previous is not None:
            previous.cancel()
            self.superseded += 1
        self._jobs[source] = self._executor.submit(
            compile_source, source, self._registry, self._options.head_insert
        )

    def pending(self) -> int:
        return len(self._jobs)

    def collect(self, *, block: bool = False) -> BuildReport:
        """Write every finished job. With block=True, wait for all of them."""
        if block:
            wait(list(self._jobs.values()))
        report = BuildReport()
        for source, future in list(self._jobs.items()):
            if not future.done():
                continue
            del self._jobs[source]
            _finish(self._options, source, future, report)
        return report


def scan_tree(root: Path) -> dict[Path, float]:
    """Modification times of every file under src/ and static/."""
    snapshot: dict[Path, float] = {}
    for sub in (SRC_DIR, STATIC_DIR):
        base = root / sub
        if not base.is_dir():
            continue
        for path in base.rglob("*"):
            try:
                if path.is_file():
                    snapshot[path] = path.stat().st_mtime
            except OSError:
                continue
    return snapshot


def changed_paths(before: dict[Path, float], after: dict[Path, float]) -> set[Path]:
    """Paths added, modified, or removed between two snapshots."""
    changed = {p for p, mtime in after.items() if before.get(p) != mtime}
    changed.update(p for p in before if p not in after)
    return changed


def apply_changes(live: LiveBuilder, options: ProjectOptions, paths: set[Path]) -> None:
    """Dispatch a debounced batch of changes."""
    src = options.root / SRC_DIR
    statics_changed = False
    for path in sorted(paths):
        if path.is_relative_to(src) and path.suffix == SOURCE_SUFFIX:
            if path.is_file():
                if path.resolve() not in options.excluded:
                    live.submit(path)
            else:
                dest = output_path(options.root, path)
                if dest.exists() and not options.dry_run:
                    dest.unlink()
        elif path.is_relative_to(options.root / STATIC_DIR):
            statics_changed = True
    if statics_changed:
        sync_statics(options, BuildReport())


def live_loop(options: ProjectOptions, registry: PluginRegistry) -> None:
    """Poll src/ and static/, debounce bursts, rebuild what changed."""
    build_project(options, registry)
    snapshot = scan_tree(options.root)
    pending: set[Path] = set()
    last_change = 0.0
    print(f"Watching {options.root} for changes...", file=sys.stderr)

    with ThreadPoolExecutor(max_workers=options.workers) as pool:
        live = LiveBuilder(options, registry, pool)
        try:
            while True:
                time.sleep(options.interval)
                current = scan_tree(options.root)
                changed = changed_paths(snapshot, current)
                snapshot = current
                if changed:
                    pending |= changed
                    last_change = time.monotonic()
                if pending and time.monotonic() - last_change >= options.debounce:
                    apply_changes(live, options, pending)
                    pending = set()
                live.collect()
        except KeyboardInterrupt:
            pass


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="osmlmk",
        description="OSML project build tool",
    )
    p.add_argument("-d", "--dry-run", action="store_true", help="Do not write any output")
    p.add_argument("--config", metavar="FILE", help="Config file (default: PROJECT/osml.toml)")
    sub = p.add_subparsers(dest="command", required=True)
    for name, alias, help_text in (
        ("create", "c", "Create the project scaffold"),
        ("build", "b", "Compile every source and copy static assets"),
        ("purge", "p", "Delete generated output"),
        ("live", "l", "Build, then rebuild on every change"),
    ):
        cmd = sub.add_parser(name, aliases=[alias], help=help_text)
        cmd.add_argument("project", nargs="?", default=".", help="Project directory")
    return p


_ALIASES = {"c": "create", "b": "build", "p": "purge", "l": "live"}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = _ALIASES.get(args.command, args.command)
    root = Path(args.project)

    if command == "create":
        create_project(root)
        print(f"OK: created project at {root}", file=sys.stderr)
        return 0

    if command == "purge":
        purge_project(root)
        print(f"OK: purged {root / DIST_DIR}", file=sys.stderr)
        return 0

    config_path = Path(args.config) if args.config else None
    options = project_options(root, config_path, dry_run=args.dry_run)
    try:
        registry = build_registry(options.plugin_paths, options.plugin_timeout)
    except OsmlError as exc:
        print(exc.format(), file=sys.stderr)
        return 2

    if command == "live":
        live_loop(options, registry)
        return 0

    report = build_project(options, registry)
    if not report.ok:
        total = len(report.failed) + len(report.compiled)
        print(f"error: {len(report.failed)} of {total} documents failed", file=sys.stderr)
        return 1
    print(f"OK: built {len(report.compiled)} documents in {root}", file=sys.stderr)
    return 0
