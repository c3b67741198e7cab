"""Minimal LSP server for OSML, diagnostics only."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from osml import __version__
from osml.cli import config_plugins, load_config
from osml.errors import LexError, OsmlError, ParseError
from osml.parser import parse
from osml.plugins import PluginRegistry, build_registry, default_registry
from osml.render import render


class OsmlLanguageServer(LanguageServer):
    """Language server that renders every document against one registry."""

    def __init__(self, *args: Any, registry: PluginRegistry | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.registry = registry if registry is not None else default_registry()


server = OsmlLanguageServer(
    "osml-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


def workspace_registry(root: Path) -> PluginRegistry:
    """Build the registry for a workspace, as osmlmk would for a project there."""
    paths, timeout = config_plugins(load_config(None, root))
    paths = [p if p.is_absolute() else root / p for p in paths]
    paths.append(root / "plugins")
    return build_registry(paths, timeout)


def _diagnostic(exc: OsmlError, severity: DiagnosticSeverity) -> Diagnostic:
    if exc.span is None:
        start = end = Position(line=0, character=0)
    else:
        start = Position(line=exc.span.start.line - 1, character=exc.span.start.column - 1)
        end = Position(line=exc.span.end.line - 1, character=exc.span.end.column - 1)
    return Diagnostic(
        range=Range(start=start, end=end),
        message=exc.message,
        severity=severity,
        source="osml",
    )


def _validate(ls: LanguageServer, uri: str, registry: PluginRegistry | None = None) -> None:
    """Run the OSML pipeline and publish diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    source = doc.source
    filename = uri.rsplit("/", 1)[-1] if "/" in uri else uri
    diagnostics: list[Diagnostic] = []

    try:
        ast = parse(source, filename)
    except (LexError, ParseError) as exc:
        diagnostics.append(_diagnostic(exc, DiagnosticSeverity.Error))
    else:
        try:
            render(ast, registry if registry is not None else default_registry(), source)
        except OsmlError as exc:
            diagnostics.append(_diagnostic(exc, DiagnosticSeverity.Warning))

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: OsmlLanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri, ls.registry)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: OsmlLanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri, ls.registry)


def main() -> None:
    try:
        server.registry = workspace_registry(Path.cwd())
    except OsmlError as exc:
        print(exc.format(), file=sys.stderr)
    server.start_io()
