"""
Language-service bridge: the request steps every provider shares.

A request against a template is served by

1. making the template's virtual document fresh,
2. finding the expression under the cursor and translating the cursor
   into the virtual document,
3. asking the oracle, guarded so engine failures become empty results,
4. checking the virtual document did not change while the oracle was
   working (a stale answer is discarded rather than mapped),
5. translating every returned position back into template or source
   coordinates and dropping results that only exist in generated code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, TypeVar

from lsprotocol import types as lsp

from aurelia_lsp.mapping import find_record, find_record_by_virtual, to_template_range, to_virtual
from aurelia_lsp.text import LineIndex
from aurelia_lsp.virtual_document import MappingRecord, VirtualDocument

if TYPE_CHECKING:
    from aurelia_lsp.oracle import TypeOracle
    from aurelia_lsp.server import AureliaLanguageServer
    from aurelia_lsp.session import Session, TemplateEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RequestContext:
    """A request position resolved against a fresh virtual document."""

    entry: TemplateEntry
    virtual: VirtualDocument
    record: MappingRecord
    offset: int
    """Template offset of the request."""
    virtual_offset: int


@dataclass(frozen=True)
class MappedLocation:
    uri: str
    range: lsp.Range
    path: str


class LanguageServiceBridge:
    def __init__(self, server: AureliaLanguageServer):
        self.server = server

    @property
    def session(self) -> Session:
        return self.server.session

    @property
    def oracle(self) -> TypeOracle | None:
        return self.server.session.oracle

    def locate(self, uri: str, position: lsp.Position) -> RequestContext | None:
        """Resolve a request position to the expression containing it."""
        entry = self.session.ensure_fresh(uri)
        if entry is None or entry.virtual is None:
            return None

        offset = entry.line_index.offset_at(position)
        record = find_record(entry.virtual.records, offset)
        if record is None:
            return None

        return RequestContext(
            entry=entry,
            virtual=entry.virtual,
            record=record,
            offset=offset,
            virtual_offset=to_virtual(offset, record),
        )

    async def ask(self, call: Awaitable[T], default: T, what: str) -> T:
        """Await an oracle call, turning any failure into *default*."""
        try:
            return await call
        except Exception as e:
            logger.warning(f"Oracle {what} request failed: {e}")
            return default

    def is_current(self, ctx: RequestContext) -> bool:
        current = self.session.is_current(ctx.entry.uri, ctx.virtual.version)
        if not current:
            logger.debug(f"Discarding result for {ctx.entry.uri}: virtual v{ctx.virtual.version} is stale")
        return current

    # ------------------------------------------------------------------
    # Backward translation
    # ------------------------------------------------------------------

    @staticmethod
    def template_offsets(virtual: VirtualDocument, start: int, end: int) -> tuple[int, int] | None:
        """Map a virtual span of *virtual* to template offsets, or None if unmappable."""
        record = find_record_by_virtual(virtual.records, start, end)
        if record is None:
            return None
        return to_template_range(start, end, record)

    def template_range(self, entry: TemplateEntry, start: int, end: int) -> lsp.Range | None:
        if entry.virtual is None:
            return None
        mapped = self.template_offsets(entry.virtual, start, end)
        if mapped is None:
            return None
        return entry.line_index.range_of(*mapped)

    def map_file_span(
        self,
        path: str,
        start: int,
        end: int,
        indexes: dict[str, LineIndex | None] | None = None,
    ) -> MappedLocation | None:
        """Map a span in any file the oracle reports.

        Virtual documents of open templates are redirected to the template;
        every other file (the companion included) is translated with its own
        line table.
        """
        entry = self.session.template_for_virtual(path)
        if entry is not None:
            rng = self.template_range(entry, start, end)
            if rng is None:
                logger.debug(f"Dropping location in generated code of {path} at {start}-{end}")
                return None
            return MappedLocation(uri=entry.uri, range=rng, path=entry.path)

        index = self._index_for(path, indexes if indexes is not None else {})
        if index is None:
            return None
        return MappedLocation(uri=Path(path).as_uri(), range=index.range_of(start, end), path=path)

    def _index_for(self, path: str, indexes: dict[str, LineIndex | None]) -> LineIndex | None:
        if path in indexes:
            return indexes[path]

        # The oracle reads files it was not sent from disk, so offsets refer to the disk text
        index = None
        text = self.session.resolver.read_file(path)
        if text is not None:
            index = LineIndex(text)
        else:
            logger.debug(f"Cannot read {path} to map a location")
        indexes[path] = index
        return index

