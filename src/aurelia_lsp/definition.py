"""
Navigation and rename providers for aurelia-lsp.

Definition, references and rename results can land in three kinds of
file: the companion view-model (or any other project file), which is
translated with that file's own line table; the virtual document of an
open template, which is redirected to the template itself; and
generated code such as the receiver prefix, which is dropped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from aurelia_lsp.bridge import LanguageServiceBridge, MappedLocation
from aurelia_lsp.text import LineIndex

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer

logger = logging.getLogger(__name__)


class AureliaDefinitionProvider:
    """Provides definition, references and rename for template expressions."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server
        self.bridge = LanguageServiceBridge(server)

    async def get_definition(self, params: lsp.DefinitionParams) -> list[lsp.LocationLink] | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        definition = await self.bridge.ask(
            oracle.get_definition_at(ctx.virtual.path, ctx.virtual_offset), None, "definition"
        )
        if definition is None or not self.bridge.is_current(ctx):
            return None

        origin = None
        if definition.span is not None:
            origin = self.bridge.template_range(ctx.entry, *definition.span)

        indexes: dict[str, LineIndex | None] = {}
        links = []
        for target in definition.targets:
            location = self.bridge.map_file_span(target.path, target.start, target.end, indexes)
            if location is None:
                continue
            links.append(
                lsp.LocationLink(
                    target_uri=location.uri,
                    target_range=location.range,
                    target_selection_range=location.range,
                    origin_selection_range=origin,
                )
            )
        return links or None

    async def get_references(self, params: lsp.ReferenceParams) -> list[lsp.Location] | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        spans = await self.bridge.ask(
            oracle.find_references_at(ctx.virtual.path, ctx.virtual_offset), [], "references"
        )
        if not self.bridge.is_current(ctx):
            return None

        indexes: dict[str, LineIndex | None] = {}
        locations: list[lsp.Location] = []
        seen: set[tuple[str, int, int, int, int]] = set()
        for span in spans:
            location = self.bridge.map_file_span(span.path, span.start, span.end, indexes)
            if location is None:
                continue
            key = _location_key(location)
            if key in seen:
                continue
            seen.add(key)
            locations.append(lsp.Location(uri=location.uri, range=location.range))
        return locations or None

    async def prepare_rename(self, params: lsp.PrepareRenameParams) -> lsp.Range | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        span = await self.bridge.ask(
            oracle.prepare_rename_at(ctx.virtual.path, ctx.virtual_offset), None, "prepare rename"
        )
        if span is None or not self.bridge.is_current(ctx):
            return None
        return self.bridge.template_range(ctx.entry, *span)

    async def rename(self, params: lsp.RenameParams) -> lsp.WorkspaceEdit | None:
        ctx = self.bridge.locate(params.text_document.uri, params.position)
        oracle = self.bridge.oracle
        if ctx is None or oracle is None:
            return None

        edits = await self.bridge.ask(
            oracle.find_rename_locations_at(ctx.virtual.path, ctx.virtual_offset, params.new_name),
            [],
            "rename",
        )
        if not edits or not self.bridge.is_current(ctx):
            return None

        indexes: dict[str, LineIndex | None] = {}
        per_file: dict[str, list[lsp.TextEdit]] = {}
        seen: set[tuple[str, int, int, int, int]] = set()
        for edit in edits:
            location = self.bridge.map_file_span(edit.path, edit.start, edit.end, indexes)
            if location is None:
                continue
            key = _location_key(location)
            if key in seen:
                continue
            seen.add(key)
            per_file.setdefault(location.uri, []).append(
                lsp.TextEdit(range=location.range, new_text=edit.new_text)
            )

        if not per_file:
            return None

        logger.debug(
            f"Rename to {params.new_name!r}: "
            f"{sum(len(e) for e in per_file.values())} edits in {len(per_file)} files"
        )
        return lsp.WorkspaceEdit(
            document_changes=[
                lsp.TextDocumentEdit(
                    text_document=lsp.OptionalVersionedTextDocumentIdentifier(
                        uri=uri, version=self._open_version(uri)
                    ),
                    edits=text_edits,
                )
                for uri, text_edits in per_file.items()
            ]
        )

    def _open_version(self, uri: str) -> int | None:
        entry = self.server.session.get(uri)
        return entry.version if entry is not None else None


def _location_key(location: MappedLocation) -> tuple[str, int, int, int, int]:
    rng = location.range
    return (location.uri, rng.start.line, rng.start.character, rng.end.line, rng.end.character)
