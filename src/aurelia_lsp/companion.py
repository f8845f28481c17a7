"""
Companion view-model resolution.

A template ``foo-bar.html`` is backed by the class exported from
``foo-bar.ts`` next to it. When the file exports no class, the class
name falls back to the PascalCase form of the file name.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from aurelia_lsp.text import read_text_file
from aurelia_lsp.typescript import TypeScriptParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompanionBinding:
    """Association between a template and its view-model class."""

    class_name: str
    source_path: str


def kebab_to_pascal(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("-") if part)


def to_kebab_case(name: str) -> str:
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    name = re.sub(r"([A-Z])([A-Z][a-z])", r"\1-\2", name)
    return name.lower()


class CompanionResolver:
    """Resolve the companion class for a template path."""

    def __init__(
        self,
        read_file: Callable[[str], str | None] = read_text_file,
        parser: TypeScriptParser | None = None,
    ) -> None:
        self.read_file = read_file
        self.parser = parser or TypeScriptParser()

    @staticmethod
    def candidate_path(template_path: str) -> str:
        return str(Path(template_path).with_suffix(".ts"))

    def resolve(self, template_path: str) -> CompanionBinding | None:
        source_path = self.candidate_path(template_path)
        source = self.read_file(source_path)
        if source is None:
            logger.info(f"No view-model found for {template_path} at {source_path}")
            return None

        module = self.parser.parse_module(source)
        cls = module.first_exported_class()
        if cls is not None and cls.name:
            class_name = cls.name
        else:
            class_name = kebab_to_pascal(Path(template_path).stem)
            logger.debug(f"No exported class in {source_path}, assuming {class_name}")

        return CompanionBinding(class_name=class_name, source_path=source_path)
