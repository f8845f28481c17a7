"""
Completion provider for aurelia-lsp.

Inside a template expression, completions come from the oracle queried
in the virtual document, then cleaned up for the template author:
generated names are hidden, view-model members sort first, and members
the engine did not offer are filled in from the resolved member list.
After a ``|`` the value converters registered in the project are offered.

Outside expressions, markup completions are built from the component
registry: custom elements after ``<``; attributes, bindables and
template controllers inside a start tag; binding commands after
``attribute.``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from aurelia_lsp.bridge import LanguageServiceBridge, RequestContext
from aurelia_lsp.expressions import (
    BINDING_COMMAND_SUFFIXES,
    TEMPLATE_CONTROLLERS,
    MarkupContextKind,
    markup_context,
)
from aurelia_lsp.mapping import find_record
from aurelia_lsp.oracle import OracleCompletion, SymbolKind
from aurelia_lsp.virtual_document import (
    ELEMENT_PLACEHOLDER,
    FROM_VIEW_PLACEHOLDER,
    PLACEHOLDER,
    RECEIVER,
    RECEIVER_PREFIX,
)

if TYPE_CHECKING:
    from aurelia_lsp.server import AureliaLanguageServer
    from aurelia_lsp.session import TemplateEntry

logger = logging.getLogger(__name__)

RANK_MEMBER = "0"
RANK_CONVERTER = "1"
RANK_LOCAL = "5"
RANK_CALLABLE = "7"
RANK_KEYWORD = "8"

LITERAL_KEYWORDS = frozenset({"true", "false", "null", "undefined"})
HIDDEN_PREFIXES = (
    PLACEHOLDER,
    ELEMENT_PLACEHOLDER,
    FROM_VIEW_PLACEHOLDER,
    RECEIVER,
    "__filename",
    "__dirname",
)

_LSP_KINDS: dict[SymbolKind, lsp.CompletionItemKind] = {
    SymbolKind.PROPERTY: lsp.CompletionItemKind.Property,
    SymbolKind.METHOD: lsp.CompletionItemKind.Method,
    SymbolKind.VARIABLE: lsp.CompletionItemKind.Variable,
    SymbolKind.FUNCTION: lsp.CompletionItemKind.Function,
    SymbolKind.CLASS: lsp.CompletionItemKind.Class,
    SymbolKind.KEYWORD: lsp.CompletionItemKind.Keyword,
    SymbolKind.OTHER: lsp.CompletionItemKind.Text,
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_TRAILING_IDENTIFIER_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*$")
# A term may start here: expression start, after an operator or an opening bracket
_BARE_TERM_RE = re.compile(r"(?:^|[-+*/%!=<>&|^~?:,;(\[{])\s*$")
_PIPE_RE = re.compile(r"(?<!\|)\|\s*[A-Za-z_$]?[A-Za-z0-9_$]*$")


def is_bare_term_position(text_before: str) -> bool:
    """True if the text before the cursor leaves room for a bare identifier."""
    head = _TRAILING_IDENTIFIER_RE.sub("", text_before)
    return bool(_BARE_TERM_RE.search(head))


def is_pipe_position(text_before: str) -> bool:
    """True right after a value converter pipe (``x | ``, ``x | date``)."""
    return bool(_PIPE_RE.search(text_before))


class AureliaCompletionProvider:
    """Provides completions for Aurelia templates."""

    def __init__(self, server: AureliaLanguageServer):
        self.server = server
        self.bridge = LanguageServiceBridge(server)

    async def get_completions(self, params: lsp.CompletionParams) -> lsp.CompletionList | None:
        uri = params.text_document.uri
        entry = self.server.session.ensure_fresh(uri)
        if entry is None:
            return None

        offset = entry.line_index.offset_at(params.position)
        if entry.virtual is not None and find_record(entry.virtual.records, offset) is not None:
            ctx = self.bridge.locate(uri, params.position)
            if ctx is None:
                return None
            items = await self._expression_completions(ctx)
            if items is None:
                return None
        elif self.server.settings.markup_completions_enabled:
            items = self._markup_completions(entry, offset)
        else:
            items = []

        if not items:
            return None
        return lsp.CompletionList(is_incomplete=False, items=items)

    # ------------------------------------------------------------------
    # Expression completions
    # ------------------------------------------------------------------

    async def _expression_completions(self, ctx: RequestContext) -> list[lsp.CompletionItem] | None:
        entry = ctx.entry
        text_before = entry.text[ctx.record.template_start : ctx.offset]

        if is_pipe_position(text_before):
            return self._value_converter_completions()

        members = self.server.session.member_cache.get_members(ctx.virtual.binding)
        results: list[OracleCompletion] = []
        oracle = self.bridge.oracle
        if oracle is not None:
            results = await self.bridge.ask(
                oracle.get_completions_at(ctx.virtual.path, ctx.virtual_offset), [], "completion"
            )
            if not self.bridge.is_current(ctx):
                return None

        entries = [r for r in results if self._is_visible(r, ctx.virtual.binding.class_name)]
        known = set(members)

        if (
            oracle is not None
            and is_bare_term_position(text_before)
            and not any(e.name in known for e in entries)
        ):
            receiver_end = self._receiver_end(ctx)
            if receiver_end is not None:
                extra = await self.bridge.ask(
                    oracle.get_completions_at(ctx.virtual.path, receiver_end), [], "member completion"
                )
                if not self.bridge.is_current(ctx):
                    return None
                seen = {e.name for e in entries}
                for result in extra:
                    if result.kind in (SymbolKind.PROPERTY, SymbolKind.METHOD) and result.name not in seen:
                        result.detail = f"this.{result.name}" + (f": {result.detail}" if result.detail else "")
                        entries.append(result)
                        seen.add(result.name)

        items = [self._to_item(e, i, known) for i, e in enumerate(entries)]
        items.extend(self._member_fallbacks(text_before, members, items))

        converters = {c.name for c in self.server.session.registry.value_converters()}
        items = [item for item in items if item.label not in converters]
        items.sort(key=lambda item: item.sort_text or "")
        logger.debug(f"Returning {len(items)} expression completions for {entry.uri}")
        return items

    @staticmethod
    def _receiver_end(ctx: RequestContext) -> int | None:
        """Virtual offset just after the first receiver prefix of the expression."""
        for rewrite in ctx.record.rewrites:
            if rewrite.width == len(RECEIVER_PREFIX):
                return rewrite.virtual_end
        return None

    @staticmethod
    def _is_visible(result: OracleCompletion, class_name: str) -> bool:
        if result.name.startswith(HIDDEN_PREFIXES) or result.name == class_name:
            return False
        if result.kind == SymbolKind.OTHER:
            return False
        if result.kind == SymbolKind.KEYWORD and result.name not in LITERAL_KEYWORDS:
            return False
        return True

    @staticmethod
    def _rank(result: OracleCompletion, members: set[str]) -> str:
        if result.kind == SymbolKind.KEYWORD:
            return RANK_KEYWORD
        if result.name in members:
            return RANK_MEMBER
        if result.kind in (SymbolKind.FUNCTION, SymbolKind.CLASS):
            return RANK_CALLABLE
        return RANK_LOCAL

    def _to_item(self, result: OracleCompletion, index: int, members: set[str]) -> lsp.CompletionItem:
        return lsp.CompletionItem(
            label=result.name,
            kind=_LSP_KINDS[result.kind],
            insert_text=result.insert_text or result.name,
            sort_text=f"{self._rank(result, members)}{result.sort_text}{index:03d}",
            detail=result.detail or result.kind.value,
        )

    @staticmethod
    def _member_fallbacks(
        text_before: str, members: list[str], items: list[lsp.CompletionItem]
    ) -> list[lsp.CompletionItem]:
        """Members the engine did not offer: for a partial identifier, or an empty context."""
        labels = {item.label for item in items}
        stripped = text_before.strip()

        if _IDENTIFIER_RE.match(stripped):
            if any(label.startswith(stripped) for label in labels):
                return []
            candidates = [m for m in members if m.startswith(stripped)]
            tag = "partial"
        elif not text_before[-1:].strip():
            candidates = list(members)
            tag = "always"
        else:
            return []

        return [
            lsp.CompletionItem(
                label=name,
                kind=lsp.CompletionItemKind.Property,
                insert_text=name,
                sort_text=f"{RANK_MEMBER}_vm_{tag}_{name}",
                detail="(view-model member)",
            )
            for name in candidates
            if name not in labels
        ]

    def _value_converter_completions(self) -> list[lsp.CompletionItem]:
        return [
            lsp.CompletionItem(
                label=component.name,
                kind=lsp.CompletionItemKind.Function,
                insert_text=component.name,
                sort_text=f"{RANK_CONVERTER}_vc_{component.name}",
                detail="Value Converter",
                documentation=f"Defined in: {Path(component.source_path).name}",
            )
            for component in self.server.session.registry.value_converters()
        ]

    # ------------------------------------------------------------------
    # Markup completions
    # ------------------------------------------------------------------

    def _markup_completions(self, entry: TemplateEntry, offset: int) -> list[lsp.CompletionItem]:
        context = markup_context(entry.text, offset)
        if context is None:
            return []

        registry = self.server.session.registry
        items: list[lsp.CompletionItem] = []

        if context.kind == MarkupContextKind.TAG_NAME:
            for component in registry.elements():
                items.append(
                    lsp.CompletionItem(
                        label=component.name,
                        kind=lsp.CompletionItemKind.Class,
                        detail=f"Custom Element ({component.class_name})",
                        documentation=f"Defined in: {Path(component.source_path).name}",
                        sort_text=f"0_element_{component.name}",
                    )
                )

        elif context.kind == MarkupContextKind.BINDING_COMMAND:
            component = registry.get(context.tag) if context.tag else None
            is_bindable = component is not None and any(
                b.attribute_name == context.word or b.property_name == context.word for b in component.bindables
            )
            target = f"bindable '{context.word}'" if is_bindable else f"attribute '{context.word}'"
            for suffix in BINDING_COMMAND_SUFFIXES:
                if suffix == ".ref":
                    continue
                command = suffix[1:]
                items.append(
                    lsp.CompletionItem(
                        label=command,
                        kind=lsp.CompletionItemKind.Event,
                        insert_text=command,
                        filter_text=f"{context.word}{suffix}",
                        detail=f"Binding command {suffix} on {target}",
                        sort_text=f"0_command_{command}",
                    )
                )

        else:
            component = registry.get(context.tag) if context.tag else None
            if component is not None:
                for bindable in component.bindables:
                    for suffix in ("", ".bind"):
                        label = bindable.attribute_name + suffix
                        items.append(
                            lsp.CompletionItem(
                                label=label,
                                kind=lsp.CompletionItemKind.Property,
                                detail=f"Bindable {component.class_name}.{bindable.property_name}",
                                sort_text=f"0_bindable_{label}",
                            )
                        )
            for attribute in registry.attributes():
                items.append(
                    lsp.CompletionItem(
                        label=attribute.name,
                        kind=lsp.CompletionItemKind.Property,
                        detail=f"Custom Attribute ({attribute.class_name})",
                        sort_text=f"1_attribute_{attribute.name}",
                    )
                )
            for controller in TEMPLATE_CONTROLLERS:
                items.append(
                    lsp.CompletionItem(
                        label=controller,
                        kind=lsp.CompletionItemKind.Keyword,
                        detail="Template controller",
                        sort_text=f"2_controller_{controller}",
                    )
                )

        return items
