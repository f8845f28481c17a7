"""
Tree-sitter integration for TypeScript companion files.

Reads just enough of a TypeScript module to answer the questions the
server asks without the type checker: which classes a file declares,
their members and decorators, what they extend, and where imported
names come from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)


@dataclass
class Decorator:
    """A decorator application such as ``@customElement('my-el')``."""

    name: str
    arguments: list[str | dict[str, str]] = field(default_factory=list)
    """String literal arguments, or string-valued properties of object literal arguments."""

    def first_string(self, key: str = "name") -> str | None:
        """Return the first string argument, or ``key`` of the first object argument."""
        for arg in self.arguments:
            if isinstance(arg, str):
                return arg
            if key in arg:
                return arg[key]
        return None


@dataclass
class ClassMember:
    name: str
    kind: str  # "field", "method", "accessor" or "parameter"
    is_static: bool = False
    decorators: list[Decorator] = field(default_factory=list)


@dataclass
class ClassDeclaration:
    name: str
    exported: bool
    base_name: str | None
    decorators: list[Decorator]
    members: list[ClassMember]


@dataclass
class ModuleInfo:
    classes: list[ClassDeclaration]
    imports: dict[str, tuple[str, str]]
    """Local name -> (module specifier, imported name)."""

    def find_class(self, name: str | None) -> ClassDeclaration | None:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    def first_exported_class(self) -> ClassDeclaration | None:
        for cls in self.classes:
            if cls.exported:
                return cls
        return None


def _text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _string_value(node: Node) -> str:
    """Value of a ``string`` node without its quotes."""
    return "".join(_text(c) for c in node.children if c.type in ("string_fragment", "escape_sequence"))


class TypeScriptParser:
    """Parser for TypeScript modules using tree-sitter."""

    CLASS_TYPES = {"class_declaration", "abstract_class_declaration"}
    MEMBER_NAME_TYPES = {"property_identifier", "private_property_identifier", "string"}

    def __init__(self) -> None:
        self._language = Language(tree_sitter_typescript.language_typescript())
        self._parser = Parser()
        self._parser.language = self._language

    def parse_module(self, source: str) -> ModuleInfo:
        tree = self._parser.parse(source.encode("utf-8"))
        classes: list[ClassDeclaration] = []
        imports: dict[str, tuple[str, str]] = {}

        for node in tree.root_node.children:
            if node.type == "import_statement":
                imports.update(self._read_import(node))
            elif node.type == "export_statement":
                declaration = node.child_by_field_name("declaration")
                if declaration is not None and declaration.type in self.CLASS_TYPES:
                    outer = [self._read_decorator(c) for c in node.children if c.type == "decorator"]
                    classes.append(self._read_class(declaration, exported=True, decorators=outer))
            elif node.type in self.CLASS_TYPES:
                classes.append(self._read_class(node, exported=False, decorators=[]))

        return ModuleInfo(classes=classes, imports=imports)

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def _read_class(
        self, node: Node, exported: bool, decorators: list[Decorator]
    ) -> ClassDeclaration:
        decorators = decorators + [
            self._read_decorator(c) for c in node.children if c.type == "decorator"
        ]

        base_name = None
        for child in node.children:
            if child.type != "class_heritage":
                continue
            for clause in child.children:
                if clause.type == "extends_clause":
                    value = clause.child_by_field_name("value")
                    if value is not None and value.type == "identifier":
                        base_name = _text(value)

        members: list[ClassMember] = []
        body = node.child_by_field_name("body")
        if body is not None:
            members = self._read_members(body)

        return ClassDeclaration(
            name=_text(node.child_by_field_name("name")),
            exported=exported,
            base_name=base_name,
            decorators=decorators,
            members=members,
        )

    def _read_members(self, body: Node) -> list[ClassMember]:
        members: list[ClassMember] = []
        pending: list[Decorator] = []

        for child in body.children:
            if child.type == "decorator":
                pending.append(self._read_decorator(child))
                continue

            if child.type in ("public_field_definition", "method_definition", "method_signature", "abstract_method_signature"):
                name = self._member_name(child)
                own = [self._read_decorator(c) for c in child.children if c.type == "decorator"]
                is_static = any(c.type == "static" for c in child.children)
                if child.type == "public_field_definition":
                    kind = "field"
                elif any(c.type in ("get", "set") for c in child.children):
                    kind = "accessor"
                else:
                    kind = "method"

                if name == "constructor":
                    members.extend(self._parameter_properties(child))
                elif name:
                    members.append(
                        ClassMember(name=name, kind=kind, is_static=is_static, decorators=pending + own)
                    )
            pending = []

        return members

    def _member_name(self, node: Node) -> str | None:
        name = node.child_by_field_name("name")
        if name is None or name.type not in self.MEMBER_NAME_TYPES:
            return None
        if name.type == "string":
            return _string_value(name)
        return _text(name)

    def _parameter_properties(self, constructor: Node) -> list[ClassMember]:
        """Constructor parameters declared with an accessibility or readonly modifier."""
        members: list[ClassMember] = []
        params = constructor.child_by_field_name("parameters")
        if params is None:
            return members
        for param in params.children:
            if param.type not in ("required_parameter", "optional_parameter"):
                continue
            is_property = any(c.type in ("accessibility_modifier", "readonly") for c in param.children)
            pattern = param.child_by_field_name("pattern")
            if is_property and pattern is not None and pattern.type == "identifier":
                decorators = [self._read_decorator(c) for c in param.children if c.type == "decorator"]
                members.append(ClassMember(name=_text(pattern), kind="parameter", decorators=decorators))
        return members

    # ------------------------------------------------------------------
    # Decorators and imports
    # ------------------------------------------------------------------

    def _read_decorator(self, node: Node) -> Decorator:
        expr = next((c for c in node.children if c.type != "@"), None)
        if expr is None:
            return Decorator(name="")
        if expr.type == "call_expression":
            function = expr.child_by_field_name("function")
            arguments = expr.child_by_field_name("arguments")
            return Decorator(
                name=_text(function),
                arguments=self._read_arguments(arguments) if arguments is not None else [],
            )
        return Decorator(name=_text(expr))

    def _read_arguments(self, node: Node) -> list[str | dict[str, str]]:
        values: list[str | dict[str, str]] = []
        for arg in node.named_children:
            if arg.type == "string":
                values.append(_string_value(arg))
            elif arg.type == "object":
                props: dict[str, str] = {}
                for pair in arg.named_children:
                    if pair.type != "pair":
                        continue
                    key = pair.child_by_field_name("key")
                    value = pair.child_by_field_name("value")
                    if key is None or value is None or value.type != "string":
                        continue
                    key_text = _string_value(key) if key.type == "string" else _text(key)
                    props[key_text] = _string_value(value)
                values.append(props)
        return values

    def _read_import(self, node: Node) -> dict[str, tuple[str, str]]:
        source = node.child_by_field_name("source")
        if source is None:
            return {}
        module = _string_value(source)
        bindings: dict[str, tuple[str, str]] = {}
        for clause in node.children:
            if clause.type != "import_clause":
                continue
            for part in clause.children:
                if part.type == "identifier":
                    bindings[_text(part)] = (module, "default")
                elif part.type == "named_imports":
                    for spec in part.named_children:
                        if spec.type != "import_specifier":
                            continue
                        name = _text(spec.child_by_field_name("name"))
                        alias = spec.child_by_field_name("alias")
                        bindings[_text(alias) if alias is not None else name] = (module, name)
        return bindings
