"""
Hover and signature help providers for aurelia-lsp.

Both ask the oracle once at the translated cursor position. A hover's
highlight range is mapped back into the template; if it falls in
generated code the range is left out and the content kept.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from aurelia_lsp.bridge import LanguageServiceBridge

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer

logger = logging.getLogger(__name__)


class AureliaHoverProvider:
    """Provides hover information inside template expressions."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server
        self.bridge = LanguageServiceBridge(server)

    async def get_hover(self, params: lsp.HoverParams) -> lsp.Hover | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        info = await self.bridge.ask(
            oracle.get_quick_info_at(ctx.virtual.path, ctx.virtual_offset), None, "hover"
        )
        if info is None or not self.bridge.is_current(ctx):
            return None

        rng = None
        if info.span is not None:
            rng = self.bridge.template_range(ctx.entry, *info.span)

        return lsp.Hover(
            contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=info.text),
            range=rng,
        )

    async def get_signature_help(self, params: lsp.SignatureHelpParams) -> lsp.SignatureHelp | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        result = await self.bridge.ask(
            oracle.get_signature_help_at(ctx.virtual.path, ctx.virtual_offset), None, "signature help"
        )
        if result is None or not self.bridge.is_current(ctx):
            return None
        if not result.signatures:
            return None
        return result
