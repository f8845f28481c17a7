"""
Code actions provider for aurelia-lsp.

Quick fixes are requested from the oracle for the expression under the
requested range and offered only when every edit they make maps back
into a template or a real file. Formatting templates is not supported.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from aurelia_lsp.bridge import LanguageServiceBridge
from aurelia_lsp.mapping import to_virtual
from aurelia_lsp.oracle import OracleDiagnostic
from aurelia_lsp.text import LineIndex

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer

logger = logging.getLogger(__name__)


class AureliaCodeActionProvider:
    """Provides quick fixes inside template expressions."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server
        self.bridge = LanguageServiceBridge(server)

    async def get_code_actions(self, params: lsp.CodeActionParams) -> list[lsp.CodeAction] | None:
        if params.context.only and not any(
            kind.startswith(lsp.CodeActionKind.QuickFix) for kind in params.context.only
        ):
            return None

        ctx = self.bridge.locate(params.text_document.uri, params.range.start)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        entry, record = ctx.entry, ctx.record
        end_offset = min(entry.line_index.offset_at(params.range.end), record.template_end)
        virtual_end = max(ctx.virtual_offset, to_virtual(end_offset, record))

        diagnostics = [
            OracleDiagnostic(
                start=ctx.virtual_offset,
                end=virtual_end,
                message=d.message,
                severity=d.severity,
                code=d.code,
                source=d.source,
            )
            for d in params.context.diagnostics
        ]

        fixes = await self.bridge.ask(
            oracle.get_code_fixes_at(ctx.virtual.path, ctx.virtual_offset, virtual_end, diagnostics),
            [],
            "code action",
        )
        if not self.bridge.is_current(ctx):
            return None

        indexes: dict[str, LineIndex | None] = {}
        actions: list[lsp.CodeAction] = []
        for fix in fixes:
            changes: dict[str, list[lsp.TextEdit]] = {}
            complete = True
            for edit in fix.edits:
                location = self.bridge.map_file_span(edit.path, edit.start, edit.end, indexes)
                if location is None:
                    complete = False
                    break
                changes.setdefault(location.uri, []).append(
                    lsp.TextEdit(range=location.range, new_text=edit.new_text)
                )
            if not complete or not changes:
                logger.debug(f"Skipping fix {fix.title!r}: edits touch generated code")
                continue
            actions.append(
                lsp.CodeAction(
                    title=fix.title,
                    kind=lsp.CodeActionKind.QuickFix,
                    diagnostics=list(params.context.diagnostics) or None,
                    edit=lsp.WorkspaceEdit(changes=changes),
                )
            )
        return actions or None

    def format_document(self, params: lsp.DocumentFormattingParams) -> list[lsp.TextEdit]:
        logger.debug(f"Formatting requested for {params.text_document.uri}; templates are left as-is")
        return []
