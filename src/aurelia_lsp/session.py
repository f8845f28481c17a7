"""
Session state for open templates.

The session is the one aggregate the server owns: every open template,
its companion binding, extracted expressions and current virtual
document. Handlers receive it by reference; nothing else holds document
state.

Each template moves through::

    UNBOUND --(companion found)--> STALE --(regenerate)--> FRESH
       ^                             ^                      |
       +----(companion lost)---------+----(edit)------------+
                                                  any --(close)--> CLOSED

Only FRESH entries are served; :meth:`Session.ensure_fresh` regenerates
a STALE entry synchronously before a request reads it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aurelia_lsp.companion import CompanionBinding, CompanionResolver
from aurelia_lsp.expressions import ExpressionKind, ExpressionSpan, TemplateParser
from aurelia_lsp.members import MemberCache, MemberResolver
from aurelia_lsp.registry import ComponentKind, ComponentRegistry
from aurelia_lsp.text import LineIndex
from aurelia_lsp.typescript import TypeScriptParser
from aurelia_lsp.virtual_document import (
    BindableTarget,
    VirtualDocument,
    append_bindable_checks,
    binding_direction,
    synthesize,
    virtual_path_for,
)

if TYPE_CHECKING:
    from aurelia_lsp.oracle import TypeOracle

logger = logging.getLogger(__name__)


class DocumentState(str, enum.Enum):
    UNBOUND = "unbound"
    STALE = "stale"
    FRESH = "fresh"
    CLOSED = "closed"


@dataclass
class TemplateEntry:
    uri: str
    path: str
    text: str
    version: int
    state: DocumentState = DocumentState.UNBOUND
    binding: CompanionBinding | None = None
    spans: list[ExpressionSpan] = field(default_factory=list)
    virtual: VirtualDocument | None = None
    _index: LineIndex | None = field(default=None, repr=False)

    @property
    def line_index(self) -> LineIndex:
        if self._index is None or self._index.text is not self.text:
            self._index = LineIndex(self.text)
        return self._index

    @property
    def virtual_path(self) -> str:
        return virtual_path_for(self.path)


class Session:
    """Open templates and the state derived from them."""

    def __init__(
        self,
        oracle: TypeOracle | None = None,
        resolver: CompanionResolver | None = None,
        member_cache: MemberCache | None = None,
        registry: ComponentRegistry | None = None,
        template_parser: TemplateParser | None = None,
    ) -> None:
        ts_parser = TypeScriptParser()
        self.oracle = oracle
        self.resolver = resolver or CompanionResolver(parser=ts_parser)
        self.member_cache = member_cache or MemberCache(
            MemberResolver(read_file=self.resolver.read_file, parser=ts_parser)
        )
        self.registry = registry or ComponentRegistry(read_file=self.resolver.read_file, parser=ts_parser)
        self.template_parser = template_parser or TemplateParser()
        self._entries: dict[str, TemplateEntry] = {}
        self._virtual_versions: dict[str, int] = {}

    def get(self, uri: str) -> TemplateEntry | None:
        return self._entries.get(uri)

    def entries(self) -> list[TemplateEntry]:
        return list(self._entries.values())

    def __contains__(self, uri: str) -> bool:
        return uri in self._entries

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def open(self, uri: str, path: str, text: str, version: int) -> TemplateEntry:
        entry = TemplateEntry(uri=uri, path=path, text=text, version=version)
        self._entries[uri] = entry
        self._bind(entry)
        self.regenerate(entry)
        return entry

    def change(self, uri: str, text: str, version: int) -> TemplateEntry | None:
        """Apply a new template text; the virtual document is rebuilt before returning."""
        entry = self._entries.get(uri)
        if entry is None:
            return None
        entry.text = text
        entry.version = version
        if entry.state == DocumentState.FRESH:
            entry.state = DocumentState.STALE
        self.regenerate(entry)
        return entry

    def close(self, uri: str) -> TemplateEntry | None:
        entry = self._entries.pop(uri, None)
        if entry is None:
            return None
        if entry.virtual is not None and self.oracle is not None:
            self.oracle.close_document(entry.virtual.path)
        entry.state = DocumentState.CLOSED
        entry.virtual = None
        entry.spans = []
        logger.debug(f"Closed {uri}")
        return entry

    def ensure_fresh(self, uri: str) -> TemplateEntry | None:
        """Return the entry for *uri*, regenerating it first if it is stale."""
        entry = self._entries.get(uri)
        if entry is None:
            return None
        if entry.state != DocumentState.FRESH:
            self.regenerate(entry)
        return entry

    def companion_changed(self, source_path: str) -> list[TemplateEntry]:
        """Mark templates backed by *source_path* stale.

        Unbound templates whose candidate companion is *source_path* are
        included, so a newly created view-model binds on the next request.
        """
        self.member_cache.invalidate(source_path)
        affected = []
        for entry in self._entries.values():
            if entry.binding is not None:
                if entry.binding.source_path != source_path:
                    continue
            elif self.resolver.candidate_path(entry.path) != source_path:
                continue
            entry.state = DocumentState.STALE
            affected.append(entry)
        return affected

    def template_for_virtual(self, virtual_path: str) -> TemplateEntry | None:
        for entry in self._entries.values():
            if entry.virtual is not None and entry.virtual.path == virtual_path:
                return entry
        return None

    def is_current(self, uri: str, virtual_version: int) -> bool:
        """True if *uri* is still served by the virtual document at *virtual_version*."""
        entry = self._entries.get(uri)
        return (
            entry is not None
            and entry.state == DocumentState.FRESH
            and entry.virtual is not None
            and entry.virtual.version == virtual_version
        )

    def resync(self) -> None:
        """Send every current virtual document to the oracle again (after an oracle restart)."""
        if self.oracle is None:
            return
        for entry in self._entries.values():
            if entry.virtual is not None:
                self.oracle.sync_document(entry.virtual.path, entry.virtual.content, entry.virtual.version)

    # ------------------------------------------------------------------
    # Regeneration
    # ------------------------------------------------------------------

    def _bind(self, entry: TemplateEntry) -> None:
        entry.binding = self.resolver.resolve(entry.path)
        entry.state = DocumentState.UNBOUND if entry.binding is None else DocumentState.STALE

    def regenerate(self, entry: TemplateEntry) -> None:
        """Rebuild spans and the virtual document, moving the entry to FRESH or UNBOUND."""
        # The companion may have appeared, disappeared or renamed its class
        self._bind(entry)

        entry.spans = self.template_parser.extract(entry.text)
        if entry.binding is None:
            if entry.virtual is not None and self.oracle is not None:
                self.oracle.close_document(entry.virtual.path)
            entry.virtual = None
            return

        members = self.member_cache.get_members(entry.binding)
        path = entry.virtual_path
        content, records = synthesize(entry.spans, members, entry.binding, path)
        content, checks = append_bindable_checks(content, records, self._bindable_targets(entry.spans), path)

        # Template offsets may have moved even when the content did not
        version = self._virtual_versions.get(path, 0) + 1
        self._virtual_versions[path] = version

        entry.virtual = VirtualDocument(
            path=path,
            content=content,
            version=version,
            records=records,
            binding=entry.binding,
            checks=checks,
        )
        entry.state = DocumentState.FRESH
        if self.oracle is not None:
            self.oracle.sync_document(path, content, version)
        logger.debug(f"Regenerated {path} v{version}: {len(records)} expressions")

    def _bindable_targets(self, spans: list[ExpressionSpan]) -> dict[int, BindableTarget]:
        """Bindables of registered custom elements that binding spans are bound to."""
        targets: dict[int, BindableTarget] = {}
        for position, span in enumerate(spans):
            if span.kind != ExpressionKind.BINDING or not span.attribute or not span.element:
                continue
            direction = binding_direction(span.attribute)
            if direction is None:
                continue
            info = self.registry.get(span.element)
            if info is None or info.kind != ComponentKind.ELEMENT:
                continue
            attribute = span.attribute.rsplit(".", 1)[0].lower()
            for bindable in info.bindables:
                if bindable.attribute_name == attribute:
                    targets[position] = BindableTarget(
                        source_path=info.source_path,
                        class_name=info.class_name,
                        property_name=bindable.property_name,
                        direction=direction,
                    )
                    break
        return targets

    def registry_changed(self) -> list[TemplateEntry]:
        """Mark bound templates stale so bindable checks follow the registry."""
        affected = [entry for entry in self._entries.values() if entry.binding is not None]
        for entry in affected:
            entry.state = DocumentState.STALE
        return affected
