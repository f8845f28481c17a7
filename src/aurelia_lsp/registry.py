"""
Project-wide registry of Aurelia resources.

Custom elements, custom attributes and value converters are discovered
from TypeScript sources, either through their decorators::

    @customElement('user-card')
    export class UserCard {
        @bindable({ attribute: 'full-name' }) name: string;
    }

or by convention: a class named ``FooValueConverter`` is the value
converter ``foo``, and an exported class whose file has a sibling
kebab-case template is a custom element.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator

from aurelia_lsp.companion import to_kebab_case
from aurelia_lsp.text import read_text_file
from aurelia_lsp.typescript import ClassDeclaration, Decorator, TypeScriptParser

logger = logging.getLogger(__name__)

VALUE_CONVERTER_SUFFIX = "ValueConverter"

# Directories never scanned
SKIP_DIRECTORIES = frozenset({"node_modules", ".git", "dist", "build", "out"})


class ComponentKind(str, Enum):
    ELEMENT = "element"
    ATTRIBUTE = "attribute"
    VALUE_CONVERTER = "value converter"


@dataclass(frozen=True)
class Bindable:
    property_name: str
    attribute_name: str


@dataclass(frozen=True)
class ComponentInfo:
    name: str
    kind: ComponentKind
    source_path: str
    class_name: str
    bindables: tuple[Bindable, ...] = ()


def _decorator_name(decorator: Decorator) -> str:
    return decorator.name.rsplit(".", 1)[-1]


def _find_decorator(decorators: list[Decorator], name: str) -> Decorator | None:
    for decorator in decorators:
        if _decorator_name(decorator) == name:
            return decorator
    return None


def converter_name_for(class_name: str) -> str:
    """``DateFormatValueConverter`` -> ``dateFormat``."""
    base = class_name[: -len(VALUE_CONVERTER_SUFFIX)] if class_name.endswith(VALUE_CONVERTER_SUFFIX) else class_name
    return base[:1].lower() + base[1:]


def is_scannable_source(path: str) -> bool:
    return path.endswith(".ts") and not path.endswith(".d.ts")


class ComponentRegistry:
    """Name -> component map, maintained per source file.

    When two files declare a component with the same name, the first one
    registered keeps it.
    """

    def __init__(
        self,
        read_file: Callable[[str], str | None] = read_text_file,
        exists: Callable[[str], bool] = os.path.isfile,
        parser: TypeScriptParser | None = None,
    ) -> None:
        self.read_file = read_file
        self.exists = exists
        self.parser = parser or TypeScriptParser()
        self._components: dict[str, ComponentInfo] = {}
        self._by_file: dict[str, list[str]] = {}

    def get(self, name: str) -> ComponentInfo | None:
        return self._components.get(name)

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self) -> Iterator[ComponentInfo]:
        return iter(self._components.values())

    def _of_kind(self, kind: ComponentKind) -> list[ComponentInfo]:
        return sorted((c for c in self._components.values() if c.kind == kind), key=lambda c: c.name)

    def elements(self) -> list[ComponentInfo]:
        return self._of_kind(ComponentKind.ELEMENT)

    def attributes(self) -> list[ComponentInfo]:
        return self._of_kind(ComponentKind.ATTRIBUTE)

    def value_converters(self) -> list[ComponentInfo]:
        return self._of_kind(ComponentKind.VALUE_CONVERTER)

    @staticmethod
    def iter_sources(root: str) -> Iterator[str]:
        """Yield the TypeScript sources under *root*, skipping dependency and build trees."""
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRECTORIES and not d.startswith("."))
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if is_scannable_source(path):
                    yield path

    def update_file(self, path: str, text: str | None = None) -> bool:
        """Re-read the components declared in *path*.

        Returns:
            True if the registry changed.
        """
        if not is_scannable_source(path):
            return False
        if text is None:
            text = self.read_file(path)
        if text is None:
            return self.remove_file(path)

        before = {name: self._components[name] for name in self._by_file.get(path, [])}
        self._drop(path)

        found: list[str] = []
        module = self.parser.parse_module(text)
        for cls in module.classes:
            info = self._component_for(cls, path)
            if info is None:
                continue
            existing = self._components.get(info.name)
            if existing is not None and existing.source_path != path:
                logger.debug(f"Component {info.name} already declared in {existing.source_path}")
                continue
            self._components[info.name] = info
            found.append(info.name)

        if found:
            self._by_file[path] = found
        after = {name: self._components[name] for name in found}
        return before != after

    def remove_file(self, path: str) -> bool:
        """Forget every component declared in *path*. Returns True if any were registered."""
        return self._drop(path)

    def _drop(self, path: str) -> bool:
        names = self._by_file.pop(path, [])
        for name in names:
            info = self._components.get(name)
            if info is not None and info.source_path == path:
                del self._components[name]
        return bool(names)

    def _component_for(self, cls: ClassDeclaration, path: str) -> ComponentInfo | None:
        if not cls.name:
            return None

        element = _find_decorator(cls.decorators, "customElement")
        if element is not None:
            name = element.first_string("name") or to_kebab_case(cls.name)
            return ComponentInfo(name, ComponentKind.ELEMENT, path, cls.name, self._bindables(cls))

        attribute = _find_decorator(cls.decorators, "customAttribute")
        if attribute is not None:
            name = attribute.first_string("name") or to_kebab_case(cls.name)
            return ComponentInfo(name, ComponentKind.ATTRIBUTE, path, cls.name, self._bindables(cls))

        converter = _find_decorator(cls.decorators, "valueConverter")
        if converter is not None or cls.name.endswith(VALUE_CONVERTER_SUFFIX):
            name = (converter.first_string("name") if converter is not None else None) or converter_name_for(cls.name)
            return ComponentInfo(name, ComponentKind.VALUE_CONVERTER, path, cls.name)

        if cls.exported:
            source = Path(path)
            template = source.with_name(to_kebab_case(source.stem) + ".html")
            if self.exists(str(template)):
                return ComponentInfo(
                    to_kebab_case(cls.name), ComponentKind.ELEMENT, path, cls.name, self._bindables(cls)
                )
        return None

    @staticmethod
    def _bindables(cls: ClassDeclaration) -> tuple[Bindable, ...]:
        bindables = []
        for member in cls.members:
            decorator = _find_decorator(member.decorators, "bindable")
            if decorator is None:
                continue
            attribute = decorator.first_string("attribute") or to_kebab_case(member.name)
            bindables.append(Bindable(property_name=member.name, attribute_name=attribute))
        return tuple(bindables)
