"""
Virtual TypeScript documents for Aurelia templates.

Each template is projected into a synthetic TypeScript file that imports
the view-model class, declares a typed receiver and re-hosts every
template expression as a constant initializer::

    import { MyPage } from './my-page';

    declare const _this: MyPage;

    const ___expr_000001 = (_this.user.name);
    const ___expr_000002 = (_this.count + 1);

Identifiers that name view-model members are rewritten to receiver
accesses so the TypeScript engine resolves them against the class.
Every statement gets a :class:`MappingRecord` linking it back to the
template range it came from.
"""

from __future__ import annotations

import enum
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from aurelia_lsp.companion import CompanionBinding
from aurelia_lsp.expressions import ExpressionKind, ExpressionSpan

RECEIVER = "_this"
RECEIVER_PREFIX = RECEIVER + "."
PLACEHOLDER = "___expr_"
ELEMENT_PLACEHOLDER = "___el_"
FROM_VIEW_PLACEHOLDER = "___back_"
VIRTUAL_SUFFIX = ".virtual.ts"

# Never rewritten, even when a member shares the name
LITERAL_KEYWORDS = frozenset({"this", "true", "false", "null", "undefined"})

STATEMENT_SUFFIX = ");\n"


def statement_prefix(index: int) -> str:
    """Return the fixed-width statement prefix for expression *index*."""
    return f"const {PLACEHOLDER}{index:06d} = ("


STATEMENT_PREFIX_LENGTH = len(statement_prefix(0))

# String literals are matched first so identifiers inside them are skipped
_TOKEN_RE = re.compile(
    r"""'(?:\\.|[^'\\])*'?"""
    r'''|"(?:\\.|[^"\\])*"?'''
    r"""|`(?:\\.|[^`\\])*`?"""
    r"""|(?P<ident>(?<![A-Za-z0-9_$])[A-Za-z_$][A-Za-z0-9_$]*)"""
)


@dataclass(frozen=True)
class Rewrite:
    """One receiver prefix inserted into a virtual expression."""

    template_start: int
    """Template offset of the identifier the prefix was inserted before."""
    virtual_start: int
    """Virtual offset where the inserted text begins."""
    width: int
    """Number of inserted characters."""

    @property
    def virtual_end(self) -> int:
        return self.virtual_start + self.width


@dataclass(frozen=True)
class MappingRecord:
    """Link between one template expression and its virtual statement."""

    template_start: int
    template_end: int
    block_start: int
    block_end: int
    value_start: int
    value_end: int
    kind: ExpressionKind
    rewrites: tuple[Rewrite, ...] = ()

    @property
    def rewrote_implicit_receiver(self) -> bool:
        return bool(self.rewrites)


class BindingDirection(str, enum.Enum):
    TO_VIEW = "to-view"
    FROM_VIEW = "from-view"
    TWO_WAY = "two-way"


# Binding commands whose value is type checked against the bindable
_COMMAND_DIRECTIONS = {
    "bind": BindingDirection.TO_VIEW,
    "to-view": BindingDirection.TO_VIEW,
    "from-view": BindingDirection.FROM_VIEW,
    "two-way": BindingDirection.TWO_WAY,
}


def binding_direction(attribute: str) -> BindingDirection | None:
    """Data-flow direction of a binding attribute such as ``value.two-way``."""
    if "." not in attribute:
        return None
    return _COMMAND_DIRECTIONS.get(attribute.rsplit(".", 1)[1].lower())


@dataclass(frozen=True)
class BindableTarget:
    """Custom element bindable a binding expression flows into or out of."""

    source_path: str
    class_name: str
    property_name: str
    direction: BindingDirection


@dataclass(frozen=True)
class BindableCheck:
    """Statements checking one binding expression against its bindable.

    Problems reported anywhere in ``[block_start, block_end)`` belong to
    the whole template expression.
    """

    template_start: int
    template_end: int
    block_start: int
    block_end: int
    target: BindableTarget


@dataclass(frozen=True)
class VirtualDocument:
    """Synthesized TypeScript source for one template."""

    path: str
    content: str
    version: int
    records: tuple[MappingRecord, ...]
    binding: CompanionBinding
    checks: tuple[BindableCheck, ...] = ()

    @property
    def uri(self) -> str:
        return Path(self.path).as_uri()


def virtual_path_for(template_path: str) -> str:
    """Virtual documents live next to their template so relative imports resolve."""
    return template_path + VIRTUAL_SUFFIX


def relative_import(virtual_path: str, source_path: str) -> str:
    relative = os.path.relpath(source_path, os.path.dirname(virtual_path))
    relative = relative.replace(os.sep, "/")
    if relative.endswith(".ts"):
        relative = relative[:-3]
    if not relative.startswith("."):
        relative = "./" + relative
    return relative


def _preceded_by_member_dot(expression: str, index: int) -> bool:
    i = index - 1
    while i >= 0 and expression[i].isspace():
        i -= 1
    if i < 0 or expression[i] != ".":
        return False
    # '...items' is a spread, not a member access
    return not (i >= 1 and expression[i - 1] == ".")


def rewrite_expression(
    expression: str, members: Iterable[str]
) -> tuple[str, list[tuple[int, int]]]:
    """Prefix member identifiers in *expression* with the receiver.

    A single lexical left-to-right pass: only identifiers that exactly
    match a member, are not literal keywords, and are not the property
    part of a member access are rewritten.

    Returns:
        The rewritten text and, for each insertion, the pair
        ``(expression offset, rewritten-text offset)`` of the inserted prefix.
    """
    member_set = set(members)
    parts: list[str] = []
    inserted: list[tuple[int, int]] = []
    length = 0
    cursor = 0

    for match in _TOKEN_RE.finditer(expression):
        start = match.start("ident")
        if start == -1:
            continue
        token = match.group("ident")
        if token in LITERAL_KEYWORDS or token not in member_set:
            continue
        if _preceded_by_member_dot(expression, start):
            continue

        chunk = expression[cursor:start]
        parts.append(chunk)
        length += len(chunk)
        inserted.append((start, length))
        parts.append(RECEIVER_PREFIX)
        length += len(RECEIVER_PREFIX)
        cursor = start

    parts.append(expression[cursor:])
    return "".join(parts), inserted


def synthesize(
    spans: Sequence[ExpressionSpan],
    members: Sequence[str],
    binding: CompanionBinding,
    virtual_path: str,
) -> tuple[str, tuple[MappingRecord, ...]]:
    """Build virtual document text and mapping records.

    Pure: identical arguments always give identical text and records.
    """
    header = (
        f"import {{ {binding.class_name} }} from '{relative_import(virtual_path, binding.source_path)}';\n\n"
        f"declare const {RECEIVER}: {binding.class_name};\n\n"
    )
    parts = [header]
    offset = len(header)
    records: list[MappingRecord] = []

    for index, span in enumerate(spans, start=1):
        prefix = statement_prefix(index)
        block_start = offset
        value_start = block_start + len(prefix)

        if not span.text.strip():
            # Empty expression: the bare receiver gives completion a typed context
            value = RECEIVER
            rewrites: tuple[Rewrite, ...] = (Rewrite(span.start, value_start, len(RECEIVER)),)
        else:
            value, inserted = rewrite_expression(span.text, members)
            rewrites = tuple(
                Rewrite(span.start + source_at, value_start + value_at, len(RECEIVER_PREFIX))
                for source_at, value_at in inserted
            )

        statement = prefix + value + STATEMENT_SUFFIX
        parts.append(statement)
        records.append(
            MappingRecord(
                template_start=span.start,
                template_end=span.end,
                block_start=block_start,
                block_end=block_start + len(statement),
                value_start=value_start,
                value_end=value_start + len(value),
                kind=span.kind,
                rewrites=rewrites,
            )
        )
        offset += len(statement)

    return "".join(parts), tuple(records)


def append_bindable_checks(
    content: str,
    records: Sequence[MappingRecord],
    targets: Mapping[int, BindableTarget],
    virtual_path: str,
) -> tuple[str, tuple[BindableCheck, ...]]:
    """Append assignments that type check bindings against custom element bindables.

    *targets* maps a record's position to the bindable its expression is
    bound to. For ``value.bind="count"`` on ``<user-card>`` this emits::

        declare const ___el_000001: import('./user-card').UserCard;
        ___el_000001.value = ___expr_000001;

    and, for ``from-view`` and ``two-way``, the reverse assignment into a
    variable typed like the expression. The checks follow every expression
    statement, so record offsets are unaffected.
    """
    if not targets:
        return content, ()

    parts = [content, "\n"]
    offset = len(content) + 1
    checks: list[BindableCheck] = []

    for position in sorted(targets):
        record = records[position]
        target = targets[position]
        index = position + 1
        element = f"{ELEMENT_PLACEHOLDER}{index:06d}"
        expression = f"{PLACEHOLDER}{index:06d}"
        module = relative_import(virtual_path, target.source_path)

        declaration = f"declare const {element}: import('{module}').{target.class_name};\n"
        assignments = ""
        if target.direction in (BindingDirection.TO_VIEW, BindingDirection.TWO_WAY):
            assignments += f"{element}.{target.property_name} = {expression};\n"
        if target.direction in (BindingDirection.FROM_VIEW, BindingDirection.TWO_WAY):
            assignments += (
                f"const {FROM_VIEW_PLACEHOLDER}{index:06d}: typeof {expression} = "
                f"{element}.{target.property_name};\n"
            )

        block_start = offset + len(declaration)
        checks.append(
            BindableCheck(
                template_start=record.template_start,
                template_end=record.template_end,
                block_start=block_start,
                block_end=block_start + len(assignments),
                target=target,
            )
        )
        parts.append(declaration + assignments)
        offset = block_start + len(assignments)

    return "".join(parts), tuple(checks)
