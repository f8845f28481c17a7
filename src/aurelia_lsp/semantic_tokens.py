"""
Semantic tokens provider for aurelia-lsp.

The oracle classifies the whole virtual document; classifications that
fall inside template expressions are mapped back and re-encoded in the
protocol's relative format. Tokens that land in generated text, or that
would span lines in the template, are skipped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from aurelia_lsp.bridge import LanguageServiceBridge
from aurelia_lsp.oracle import OracleClassification, SymbolKind

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer

logger = logging.getLogger(__name__)

SEMANTIC_TOKEN_TYPES = ["property", "method", "variable", "function", "class", "keyword"]
SEMANTIC_TOKEN_MODIFIERS = ["declaration", "readonly"]

LEGEND = lsp.SemanticTokensLegend(
    token_types=SEMANTIC_TOKEN_TYPES,
    token_modifiers=SEMANTIC_TOKEN_MODIFIERS,
)


def encode_tokens(tokens: list[tuple[int, int, int, int, int]]) -> list[int]:
    """Delta-encode absolute ``(line, char, length, type, modifiers)`` tokens."""
    encoded: list[int] = []
    prev_line = 0
    prev_char = 0
    for line, char, length, token_type, token_modifiers in sorted(tokens):
        delta_line = line - prev_line
        delta_char = char if delta_line > 0 else char - prev_char
        encoded.extend([delta_line, delta_char, length, token_type, token_modifiers])
        prev_line = line
        prev_char = char
    return encoded


class AureliaSemanticTokensProvider:
    """Provides semantic tokens for template expressions."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server
        self.bridge = LanguageServiceBridge(server)

    async def get_semantic_tokens(self, params: lsp.SemanticTokensParams) -> lsp.SemanticTokens:
        uri = params.text_document.uri
        entry = self.server.session.ensure_fresh(uri)
        oracle = self.bridge.oracle
        if entry is None or entry.virtual is None or oracle is None:
            return lsp.SemanticTokens(data=[])

        virtual = entry.virtual
        classifications = await self.bridge.ask(
            oracle.get_semantic_classifications(virtual.path), [], "semantic tokens"
        )
        if not self.server.session.is_current(uri, virtual.version):
            logger.debug(f"Discarding semantic tokens for stale {virtual.path}")
            return lsp.SemanticTokens(data=[])

        tokens = []
        seen: set[tuple[int, int]] = set()
        for item in classifications:
            token = self._token_for(entry, item)
            if token is None or token[:2] in seen:
                continue
            seen.add(token[:2])
            tokens.append(token)
        return lsp.SemanticTokens(data=encode_tokens(tokens))

    def _token_for(self, entry, item: OracleClassification) -> tuple[int, int, int, int, int] | None:
        if item.kind == SymbolKind.OTHER or item.end <= item.start:
            return None
        span = self.bridge.template_offsets(entry.virtual, item.start, item.end)
        if span is None or span[1] <= span[0]:
            return None

        rng = entry.line_index.range_of(*span)
        if rng.start.line != rng.end.line:
            return None

        modifiers = 0
        for bit, name in enumerate(SEMANTIC_TOKEN_MODIFIERS):
            if name in item.modifiers:
                modifiers |= 1 << bit
        return (
            rng.start.line,
            rng.start.character,
            rng.end.character - rng.start.character,
            SEMANTIC_TOKEN_TYPES.index(item.kind.value),
            modifiers,
        )
