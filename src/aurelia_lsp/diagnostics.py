"""
Diagnostics provider for aurelia-lsp.

The oracle checks virtual documents on its own schedule and reports
problems asynchronously. Each report is mapped back onto the template
that owns the virtual document: a diagnostic is attached to the
expression whose value it overlaps, clamped to that expression, and
dropped if it touches no expression (the synthetic import line, for
instance) or lies entirely in generated text. Problems found by a
bindable check cover the whole binding expression.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from lsprotocol import types as lsp

from aurelia_lsp.mapping import find_records_overlapping, to_template_range
from aurelia_lsp.oracle import OracleDiagnostic
from aurelia_lsp.session import DocumentState
from aurelia_lsp.virtual_document import BindableCheck

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer
    from aurelia_lsp.session import TemplateEntry

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "aurelia-lsp"


class AureliaDiagnosticsProvider:
    """Maps oracle diagnostics onto templates and publishes them."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server

    def on_oracle_diagnostics(
        self, path: str, version: int, diagnostics: list[OracleDiagnostic]
    ) -> None:
        """Handle diagnostics the oracle published for a virtual document."""
        entry = self.server.session.template_for_virtual(path)
        if entry is None:
            logger.debug(f"Diagnostics for {path} have no open template")
            return
        if entry.virtual is None or entry.virtual.version != version:
            logger.debug(f"Ignoring diagnostics for stale {path} v{version}")
            return
        self.publish(entry.uri, self.map_diagnostics(entry, diagnostics))

    def refresh(self, entry: TemplateEntry) -> None:
        """Publish what is known for *entry* now.

        Unbound templates have their diagnostics cleared; bound ones get
        the oracle's diagnostics if it already checked the current version.
        """
        if entry.state == DocumentState.UNBOUND or entry.virtual is None:
            self.publish(entry.uri, [])
            return
        oracle = self.server.session.oracle
        if oracle is None:
            return
        reported = oracle.get_diagnostics_for(entry.virtual.path, entry.virtual.version)
        if reported is not None:
            self.publish(entry.uri, self.map_diagnostics(entry, reported))

    def map_diagnostics(
        self, entry: TemplateEntry, diagnostics: list[OracleDiagnostic]
    ) -> list[lsp.Diagnostic]:
        if entry.virtual is None:
            return []

        mapped: list[lsp.Diagnostic] = []
        for diag in diagnostics:
            check = find_check(entry.virtual.checks, diag.start, diag.end)
            if check is not None:
                target = check.target
                mapped.append(
                    lsp.Diagnostic(
                        range=entry.line_index.range_of(check.template_start, check.template_end),
                        message=f"Bindable '{target.property_name}' of {target.class_name}: {diag.message}",
                        severity=diag.severity or lsp.DiagnosticSeverity.Error,
                        code=diag.code,
                        source=diag.source or DEFAULT_SOURCE,
                    )
                )
                continue

            records = find_records_overlapping(entry.virtual.records, diag.start, diag.end)
            if not records:
                logger.debug(f"Dropping unmapped diagnostic in {entry.virtual.path}: {diag.message}")
                continue

            record = records[0]
            start = max(diag.start, record.value_start)
            end = min(diag.end, record.value_end)
            span = to_template_range(start, max(start, end), record)
            if span is None:
                logger.debug(f"Dropping diagnostic in generated code of {entry.virtual.path}: {diag.message}")
                continue

            mapped.append(
                lsp.Diagnostic(
                    range=entry.line_index.range_of(*span),
                    message=diag.message,
                    severity=diag.severity or lsp.DiagnosticSeverity.Error,
                    code=diag.code,
                    source=diag.source or DEFAULT_SOURCE,
                )
            )
        return mapped

    def publish(self, uri: str, diagnostics: list[lsp.Diagnostic]) -> None:
        if not self.server.settings.diagnostics_enabled:
            diagnostics = []
        entry = self.server.session.get(uri)
        self.server.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(
                uri=uri,
                diagnostics=diagnostics,
                version=entry.version if entry is not None else None,
            )
        )


def find_check(checks: Sequence[BindableCheck], start: int, end: int) -> BindableCheck | None:
    """The bindable check whose statements overlap ``[start, end)``."""
    for check in checks:
        if start == end:
            if check.block_start <= start < check.block_end:
                return check
        elif max(start, check.block_start) < min(end, check.block_end):
            return check
    return None
