"""
Type-analysis oracle protocol for aurelia-lsp.

The oracle is the engine that understands TypeScript: the bridge hands it
virtual documents and asks questions at offsets. Every position crossing
this boundary is an offset into the text of the file named alongside it,
so the bridge never deals in the engine's own line/column conventions.

Engine-specific symbol kinds are decoded once, by the oracle
implementation, into the closed :class:`SymbolKind` set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from lsprotocol import types as lsp


class SymbolKind(str, Enum):
    """Closed classification of the symbols the oracle reports."""

    PROPERTY = "property"
    METHOD = "method"
    VARIABLE = "variable"
    FUNCTION = "function"
    CLASS = "class"
    KEYWORD = "keyword"
    OTHER = "other"


@dataclass(frozen=True)
class FileSpan:
    path: str
    start: int
    end: int


@dataclass(frozen=True)
class FileEdit:
    path: str
    start: int
    end: int
    new_text: str


@dataclass
class OracleCompletion:
    name: str
    kind: SymbolKind
    sort_text: str = ""
    insert_text: str | None = None
    detail: str | None = None


@dataclass
class OracleQuickInfo:
    text: str
    """Markdown content."""
    span: tuple[int, int] | None = None
    """Highlighted range in the queried file, when the engine reports one."""


@dataclass
class OracleDefinition:
    targets: list[FileSpan]
    span: tuple[int, int] | None = None
    """Origin range in the queried file."""


@dataclass(frozen=True)
class OracleClassification:
    start: int
    end: int
    kind: SymbolKind
    modifiers: frozenset[str] = frozenset()


@dataclass
class OracleDiagnostic:
    start: int
    end: int
    message: str
    severity: lsp.DiagnosticSeverity | None = None
    code: int | str | None = None
    source: str | None = None


@dataclass
class OracleCodeFix:
    title: str
    edits: list[FileEdit] = field(default_factory=list)
    kind: str | None = None


@runtime_checkable
class TypeOracle(Protocol):
    """Protocol for type-analysis engines.

    Queries are async because engines usually live in another process;
    document synchronisation is a fire-and-forget notification.
    """

    async def start(self, workspace_root: str | None = None) -> None:
        """Start the engine. Called once during server initialization.

        Args:
            workspace_root: Path to the workspace root directory.
        """
        ...

    async def stop(self) -> None:
        """Stop the engine. Called during server shutdown."""
        ...

    def sync_document(self, path: str, content: str, version: int) -> None:
        """Make *content* the engine's view of *path* at *version*."""
        ...

    def close_document(self, path: str) -> None:
        """Release the engine's copy of *path*."""
        ...

    async def get_completions_at(self, path: str, offset: int) -> list[OracleCompletion]:
        """Get completions at an offset.

        Args:
            path: File the offset refers to.
            offset: Offset into the file's text.

        Returns:
            Completion entries, unfiltered.
        """
        ...

    async def get_quick_info_at(self, path: str, offset: int) -> OracleQuickInfo | None:
        """Get hover information at an offset.

        Args:
            path: File the offset refers to.
            offset: Offset into the file's text.

        Returns:
            Quick info with an optional highlight range, or None.
        """
        ...

    async def get_definition_at(self, path: str, offset: int) -> OracleDefinition | None:
        """Get definition targets for the symbol at an offset.

        Args:
            path: File the offset refers to.
            offset: Offset into the file's text.

        Returns:
            Targets in any file, or None.
        """
        ...

    async def get_signature_help_at(self, path: str, offset: int) -> lsp.SignatureHelp | None:
        """Get signature help at an offset.

        Signature help carries no positions, so it is returned as-is.
        """
        ...

    async def prepare_rename_at(self, path: str, offset: int) -> tuple[int, int] | None:
        """Return the range of the renameable symbol at an offset, or None."""
        ...

    async def find_rename_locations_at(
        self, path: str, offset: int, new_name: str
    ) -> list[FileEdit]:
        """Get the edits that rename the symbol at an offset.

        Args:
            path: File the offset refers to.
            offset: Offset into the file's text.
            new_name: Replacement name.

        Returns:
            Edits across every file the symbol appears in.
        """
        ...

    async def find_references_at(self, path: str, offset: int) -> list[FileSpan]:
        """Get every reference to the symbol at an offset, declaration included."""
        ...

    async def get_semantic_classifications(self, path: str) -> list[OracleClassification]:
        """Classify the symbols of a whole file."""
        ...

    def get_diagnostics_for(self, path: str, version: int) -> list[OracleDiagnostic] | None:
        """Return diagnostics the engine reported for *path* at *version*.

        Returns:
            The diagnostics, or None when none have arrived for that version.
        """
        ...

    async def get_code_fixes_at(
        self,
        path: str,
        start: int,
        end: int,
        diagnostics: list[OracleDiagnostic],
    ) -> list[OracleCodeFix]:
        """Get quick fixes for a range.

        Args:
            path: File the range refers to.
            start: Range start offset.
            end: Range end offset.
            diagnostics: Diagnostics the fixes should address.

        Returns:
            Fixes, each a list of edits across files.
        """
        ...
