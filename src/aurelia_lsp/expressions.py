"""
Expression extraction for Aurelia templates.

This module parses HTML templates with tree-sitter-html and yields every
embedded expression: ``${...}`` interpolations in character content and
the values of binding attributes (``value.bind="..."``, ``if.bind``,
``repeat.for`` and friends). The parse is error tolerant; unlocatable or
malformed fragments are skipped, never raised.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass

import tree_sitter_html
from tree_sitter import Language, Node, Parser

from aurelia_lsp.text import ByteOffsets

logger = logging.getLogger(__name__)


BINDING_COMMAND_SUFFIXES = (
    ".bind",
    ".trigger",
    ".call",
    ".delegate",
    ".capture",
    ".ref",
    ".one-time",
    ".to-view",
    ".from-view",
    ".two-way",
)

TEMPLATE_CONTROLLERS = (
    "repeat.for",
    "if",
    "else",
    "switch",
    "case",
    "default-case",
    "with",
    "portal",
    "view",
    "au-slot",
)

SPECIAL_ATTRIBUTES = ("view-model", "ref", "element.ref")

INTERPOLATION_RE = re.compile(r"\$\{([^}]*)\}")

# A start tag, end tag or comment: the interpolation is really unterminated
_MARKUP_RE = re.compile(r"<(?:/|!|[A-Za-z][\w-]*[\s/>])")


def mask_interpolations(text: str) -> str:
    """Blank out the inside of every ``${...}`` before parsing.

    Each masked character becomes as many spaces as its UTF-8 encoding is
    long, so byte offsets in the parse tree still address *text*. Quote
    characters are kept so attribute values end where they did. A match
    that swallows markup is left alone and the parser recovers from it.
    """

    def blank(match: re.Match) -> str:
        inner = match.group(1)
        if _MARKUP_RE.search(inner):
            return match.group(0)
        masked = "".join(
            ch if ch in "\"'" else " " * len(ch.encode("utf-8")) for ch in inner
        )
        return "${" + masked + "}"

    return INTERPOLATION_RE.sub(blank, text)


class ExpressionKind(str, enum.Enum):
    INTERPOLATION = "interpolation"
    BINDING = "binding"


@dataclass(frozen=True)
class ExpressionSpan:
    """One embedded expression occurrence in a template."""

    text: str
    """Expression source (``true`` for an empty binding value)."""
    kind: ExpressionKind
    start: int
    """Template offset of the first expression character."""
    end: int
    """Template offset just past the expression (exclusive)."""
    attribute: str | None = None
    """Attribute name for binding spans, e.g. ``value.bind``."""
    element: str | None = None
    """Tag name of the element owning a binding attribute."""


def is_binding_attribute(name: str) -> bool:
    """Return True if an attribute's value is an Aurelia expression."""
    name = name.lower()
    if name in TEMPLATE_CONTROLLERS or name in SPECIAL_ATTRIBUTES:
        return True
    if name.endswith(BINDING_COMMAND_SUFFIXES):
        return True
    return "." in name and not name.startswith(".") and not name.endswith(".")


class TemplateParser:
    """Extracts expressions from HTML templates using tree-sitter."""

    # Nodes whose character content may hold interpolations
    CONTAINER_TYPES = {"document", "element", "ERROR"}
    # Leaves that are plain character content
    CONTENT_TYPES = {"text", "entity"}
    # Content of these elements is never scanned
    RAW_TEXT_TYPES = {"script_element", "style_element"}
    TAG_TYPES = {"start_tag", "self_closing_tag"}

    def __init__(self) -> None:
        self._language = Language(tree_sitter_html.language())
        self._parser = Parser()
        self._parser.language = self._language

    def parse(self, text: str):
        return self._parser.parse(text.encode("utf-8"))

    def extract(self, text: str) -> list[ExpressionSpan]:
        """Extract all expressions from *text*, sorted by start offset."""
        # Expressions are read back from *text*; only the structure comes from the tree
        tree = self.parse(mask_interpolations(text))
        offsets = ByteOffsets(text)
        found: dict[tuple[int, int, ExpressionKind], ExpressionSpan] = {}

        # Iterative walk; order does not matter, the result is sorted below
        stack: list[Node] = [tree.root_node]
        while stack:
            node = stack.pop()

            if node.type == "attribute":
                span = self._binding_span(node, text, offsets)
                if span is not None:
                    found.setdefault((span.start, span.end, span.kind), span)
                continue

            if node.type in self.CONTAINER_TYPES:
                for span in self._interpolation_spans(node, text, offsets):
                    found.setdefault((span.start, span.end, span.kind), span)

            for child in node.children:
                if self._is_content(child):
                    continue
                if node.type in self.RAW_TEXT_TYPES and child.type not in self.TAG_TYPES:
                    continue
                stack.append(child)

        spans = sorted(found.values(), key=lambda s: (s.start, s.end))
        logger.debug(f"Extracted {len(spans)} expressions")
        return spans

    # ------------------------------------------------------------------
    # Interpolations
    # ------------------------------------------------------------------

    @classmethod
    def _is_content(cls, node: Node) -> bool:
        if node.type in cls.CONTENT_TYPES:
            return True
        # Stray characters (e.g. a lone '&' inside ${a && b}) come back as
        # ERROR nodes; treat them as text unless they hold markup.
        return node.type == "ERROR" and b"<" not in (node.text or b"")

    def _content_runs(self, node: Node) -> list[tuple[int, int]]:
        """Byte ranges of uninterrupted character content directly in *node*."""
        start, end = node.start_byte, node.end_byte
        children = node.children
        if node.type == "element" and children:
            if children[0].type in self.TAG_TYPES:
                start = children[0].end_byte
            if children[-1].type == "end_tag":
                end = children[-1].start_byte

        runs: list[tuple[int, int]] = []
        cursor = start
        for child in children:
            if child.end_byte <= start or child.start_byte >= end:
                continue
            if self._is_content(child):
                continue
            if child.start_byte > cursor:
                runs.append((cursor, child.start_byte))
            cursor = max(cursor, child.end_byte)
        if end > cursor:
            runs.append((cursor, end))
        return runs

    def _interpolation_spans(
        self, node: Node, text: str, offsets: ByteOffsets
    ) -> list[ExpressionSpan]:
        spans: list[ExpressionSpan] = []
        for run_start, run_end in self._content_runs(node):
            char_start = offsets.to_char(run_start)
            char_end = offsets.to_char(run_end)
            for match in INTERPOLATION_RE.finditer(text, char_start, char_end):
                spans.append(
                    ExpressionSpan(
                        text=match.group(1),
                        kind=ExpressionKind.INTERPOLATION,
                        start=match.start(1),
                        end=match.end(1),
                    )
                )
        return spans

    # ------------------------------------------------------------------
    # Binding attributes
    # ------------------------------------------------------------------

    def _binding_span(
        self, node: Node, text: str, offsets: ByteOffsets
    ) -> ExpressionSpan | None:
        name_node = None
        value_node = None
        for child in node.children:
            if child.type == "attribute_name":
                name_node = child
            elif child.type in ("attribute_value", "quoted_attribute_value"):
                value_node = child

        # Valueless attributes (<div if>) carry no expression
        if name_node is None or value_node is None:
            return None

        name = text[offsets.to_char(name_node.start_byte):offsets.to_char(name_node.end_byte)]
        if not is_binding_attribute(name):
            return None

        if value_node.type == "quoted_attribute_value":
            inner = [c for c in value_node.children if c.type == "attribute_value"]
            if inner:
                value_start, value_end = inner[0].start_byte, inner[0].end_byte
            else:
                value_start = value_node.start_byte + 1
                value_end = value_node.end_byte
                last = value_node.children[-1] if value_node.children else None
                if last is not None and last.type in ('"', "'") and last.start_byte >= value_start:
                    value_end = last.start_byte
                value_end = max(value_start, value_end)
        else:
            value_start, value_end = value_node.start_byte, value_node.end_byte

        start = offsets.to_char(value_start)
        end = offsets.to_char(value_end)
        expression = text[start:end]
        return ExpressionSpan(
            text=expression if expression else "true",
            kind=ExpressionKind.BINDING,
            start=start,
            end=end,
            attribute=name,
            element=self._owner_tag(node),
        )

    @staticmethod
    def _owner_tag(attribute: Node) -> str | None:
        tag = attribute.parent
        if tag is None:
            return None
        for child in tag.children:
            if child.type == "tag_name":
                return child.text.decode("utf-8").lower() if child.text else None
        return None


# ----------------------------------------------------------------------
# Markup context (used for completions outside expressions)
# ----------------------------------------------------------------------


class MarkupContextKind(str, enum.Enum):
    TAG_NAME = "tag_name"
    ATTRIBUTE = "attribute"
    BINDING_COMMAND = "binding_command"


@dataclass(frozen=True)
class MarkupContext:
    kind: MarkupContextKind
    tag: str | None
    word: str


_LOOKBEHIND = 500
_TAG_NAME_RE = re.compile(r"<([A-Za-z][\w-]*)?$")
_START_TAG_RE = re.compile(r"<([A-Za-z][\w-]*)\s(?:[^<>\"']|\"[^\"]*\"|'[^']*')*$")
_COMMAND_WORD_RE = re.compile(r"(?:^|\s)([A-Za-z][\w-]*)\.$")
_ATTRIBUTE_WORD_RE = re.compile(r"([\w.-]*)$")


def markup_context(text: str, offset: int) -> MarkupContext | None:
    """Classify the markup position at *offset*.

    Returns None when the cursor is in character content or inside an
    attribute value.
    """
    before = text[max(0, offset - _LOOKBEHIND):offset]

    match = _TAG_NAME_RE.search(before)
    if match:
        return MarkupContext(MarkupContextKind.TAG_NAME, None, match.group(1) or "")

    match = _START_TAG_RE.search(before)
    if match is None:
        return None

    tag = match.group(1).lower()
    tail = before[match.end(1):]
    command = _COMMAND_WORD_RE.search(tail)
    if command:
        return MarkupContext(MarkupContextKind.BINDING_COMMAND, tag, command.group(1))

    word = _ATTRIBUTE_WORD_RE.search(tail)
    return MarkupContext(MarkupContextKind.ATTRIBUTE, tag, word.group(1) if word else "")
