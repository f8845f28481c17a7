"""
View-model member resolution and caching.

Member names decide which identifiers in a template expression are
rewritten to receiver accesses, so resolution must always produce
something: when the class cannot be read, a fixed fallback list is used.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from aurelia_lsp.companion import CompanionBinding
from aurelia_lsp.text import read_text_file
from aurelia_lsp.typescript import ModuleInfo, TypeScriptParser

logger = logging.getLogger(__name__)

FALLBACK_MEMBERS = ["message"]

# Depth limit for following base classes across files
_MAX_BASE_DEPTH = 8


class MemberResolver:
    """Computes the instance member names declared by a view-model class."""

    def __init__(
        self,
        read_file: Callable[[str], str | None] = read_text_file,
        parser: TypeScriptParser | None = None,
    ) -> None:
        self.read_file = read_file
        self.parser = parser or TypeScriptParser()

    def resolve(self, binding: CompanionBinding, source: str | None = None) -> list[str]:
        """Return member names for *binding*, or the fallback list.

        Args:
            binding: The companion class and its source path.
            source: Source text of the companion, read from disk when omitted.

        Returns:
            Member names in declaration order, base-class members last.
        """
        if source is None:
            source = self.read_file(binding.source_path)
        if source is None:
            logger.warning(f"Cannot read {binding.source_path}, using fallback members")
            return list(FALLBACK_MEMBERS)

        module = self.parser.parse_module(source)
        if module.find_class(binding.class_name) is None:
            logger.warning(
                f"Class {binding.class_name} not found in {binding.source_path}, using fallback members"
            )
            return list(FALLBACK_MEMBERS)

        names: list[str] = []
        self._collect(binding.class_name, module, binding.source_path, set(), names, 0)

        if not names:
            logger.warning(f"No members found for {binding.class_name}, using fallback members")
            return list(FALLBACK_MEMBERS)
        return names

    def _collect(
        self,
        class_name: str,
        module: ModuleInfo,
        path: str,
        visited: set[tuple[str, str]],
        names: list[str],
        depth: int,
    ) -> None:
        if (path, class_name) in visited or depth > _MAX_BASE_DEPTH:
            return
        visited.add((path, class_name))

        cls = module.find_class(class_name)
        if cls is None:
            self._collect_imported(class_name, module, path, visited, names, depth)
            return

        for member in cls.members:
            if member.is_static or member.name == "constructor":
                continue
            if member.name.startswith(("_", "#")):
                continue
            if member.name not in names:
                names.append(member.name)

        if cls.base_name:
            self._collect(cls.base_name, module, path, visited, names, depth + 1)

    def _collect_imported(
        self,
        local_name: str,
        module: ModuleInfo,
        path: str,
        visited: set[tuple[str, str]],
        names: list[str],
        depth: int,
    ) -> None:
        imported = module.imports.get(local_name)
        if imported is None:
            return
        specifier, imported_name = imported
        if not specifier.startswith("."):
            logger.debug(f"Not following base class {local_name} from package {specifier}")
            return

        target = self._resolve_module_path(path, specifier)
        if target is None:
            return
        source = self.read_file(target)
        if source is None:
            return

        base_module = self.parser.parse_module(source)
        if imported_name == "default":
            cls = base_module.first_exported_class()
            if cls is None:
                return
            imported_name = cls.name
        self._collect(imported_name, base_module, target, visited, names, depth + 1)

    def _resolve_module_path(self, importer: str, specifier: str) -> str | None:
        base = Path(importer).parent / specifier
        for candidate in (base.with_name(base.name + ".ts"), base / "index.ts"):
            if self.read_file(str(candidate)) is not None:
                return str(candidate)
        return None


@dataclass
class _CacheEntry:
    content: str
    members: list[str]


class MemberCache:
    """Per source path cache of resolved member names.

    An entry is reused only while the companion file's content is unchanged.
    """

    def __init__(self, resolver: MemberResolver | None = None) -> None:
        self.resolver = resolver or MemberResolver()
        self._entries: dict[str, _CacheEntry] = {}

    def get_members(self, binding: CompanionBinding) -> list[str]:
        content = self.resolver.read_file(binding.source_path)
        entry = self._entries.get(binding.source_path)
        if entry is not None and content is not None and entry.content == content:
            logger.debug(f"Member cache hit for {binding.source_path}")
            return entry.members

        members = self.resolver.resolve(binding, content)
        if content is not None:
            self._entries[binding.source_path] = _CacheEntry(content=content, members=members)
        else:
            self._entries.pop(binding.source_path, None)
        return members

    def invalidate(self, source_path: str) -> None:
        self._entries.pop(source_path, None)

    def __contains__(self, source_path: str) -> bool:
        return source_path in self._entries
