"""Tree-sitter based usage scanner for JavaScript and TypeScript sources."""

from typing import ClassVar

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from renovate_safety.core.models import FileContext, UsageLocation, UsageType
from renovate_safety.scanning.context import classify_file_context, is_package_import
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

MAX_SNIPPET_LENGTH = 200

# Parents under which an identifier sits in a type position
TYPE_PARENTS = frozenset(
    {
        "type_annotation",
        "nested_type_identifier",
        "generic_type",
        "type_query",
        "type_arguments",
        "extends_type_clause",
        "implements_clause",
        "union_type",
        "intersection_type",
        "array_type",
    }
)


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text else ""


def _snippet(node: Node) -> str:
    first_line = _text(node).splitlines()[0] if node.text else ""
    return first_line.strip()[:MAX_SNIPPET_LENGTH]


def _same(a: Node | None, b: Node) -> bool:
    return a is not None and a.start_byte == b.start_byte and a.end_byte == b.end_byte


def _string_value(node: Node) -> str | None:
    """Return the literal value of a string node, or None for anything else."""
    if node.type == "string":
        return _text(node)[1:-1]
    if node.type == "template_string" and not any(
        child.type == "template_substitution" for child in node.named_children
    ):
        return _text(node)[1:-1]
    return None


class JavaScriptUsageScanner:
    """Finds references to an npm package in JavaScript/TypeScript files.

    Import declarations and re-exports whose specifier resolves to the
    package produce ``import`` locations. Every identifier they bind is then
    traced through the file and classified as a call, a property access or
    a type reference. ``require()`` and dynamic ``import()`` calls with a
    literal specifier produce ``require`` locations.
    """

    javascript_extensions: ClassVar[tuple[str, ...]] = (".js", ".jsx", ".mjs", ".cjs")
    typescript_extensions: ClassVar[tuple[str, ...]] = (".ts", ".mts", ".cts")
    tsx_extensions: ClassVar[tuple[str, ...]] = (".tsx",)

    def __init__(self) -> None:
        self._parsers: dict[str, Parser] = {
            "javascript": Parser(Language(tree_sitter_javascript.language())),
            "typescript": Parser(Language(tree_sitter_typescript.language_typescript())),
            "tsx": Parser(Language(tree_sitter_typescript.language_tsx())),
        }

    @classmethod
    def file_extensions(cls) -> tuple[str, ...]:
        """All extensions this scanner understands."""
        return cls.javascript_extensions + cls.typescript_extensions + cls.tsx_extensions

    def _parser_for(self, file_path: str) -> Parser | None:
        if file_path.endswith(".d.ts"):
            return self._parsers["typescript"]
        if file_path.endswith(self.tsx_extensions):
            return self._parsers["tsx"]
        if file_path.endswith(self.typescript_extensions):
            return self._parsers["typescript"]
        if file_path.endswith(self.javascript_extensions):
            return self._parsers["javascript"]
        return None

    def scan(self, file_path: str, content: str, package_name: str) -> list[UsageLocation]:
        """Scan one file for references to a package.

        Args:
            file_path: Path relative to the project root (used for context).
            content: File contents.
            package_name: npm package name, optionally scoped.

        Returns:
            One location per occurrence, in document order.
        """
        parser = self._parser_for(file_path)
        if parser is None:
            return []

        tree = parser.parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            logger.debug("Syntax errors in %s, results may be partial", file_path)
        context = classify_file_context(file_path)
        locations: list[UsageLocation] = []
        bound_names: set[str] = set()

        def record(node: Node, usage_type: UsageType, code_node: Node) -> None:
            locations.append(
                UsageLocation(
                    file=file_path,
                    line=node.start_point[0] + 1,
                    column=node.start_point[1],
                    type=usage_type,
                    code=_snippet(code_node),
                    context=context,
                )
            )

        for node in self._walk(tree.root_node):
            if node.type in ("import_statement", "export_statement"):
                source = node.child_by_field_name("source")
                specifier = _string_value(source) if source is not None else None
                if specifier is not None and is_package_import(specifier, package_name):
                    record(node, UsageType.IMPORT, node)
                    if node.type == "import_statement":
                        bound_names.update(self._bound_names(node))
            elif node.type == "call_expression" and self._is_package_require(node, package_name):
                record(node, UsageType.REQUIRE, node)

        if bound_names:
            locations.extend(self._identifier_usages(tree.root_node, bound_names, file_path, context))
            locations.sort(key=lambda loc: (loc.line, loc.column))

        return locations

    def _walk(self, root: Node):
        stack = [root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def _bound_names(self, import_node: Node) -> set[str]:
        """Local names bound by an import declaration (default, named, namespace)."""
        names: set[str] = set()
        for clause in import_node.named_children:
            if clause.type != "import_clause":
                continue
            for child in clause.named_children:
                if child.type == "identifier":
                    names.add(_text(child))
                elif child.type == "namespace_import":
                    for ident in child.named_children:
                        if ident.type == "identifier":
                            names.add(_text(ident))
                elif child.type == "named_imports":
                    for spec in child.named_children:
                        if spec.type != "import_specifier":
                            continue
                        local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                        if local is not None:
                            names.add(_text(local))
        return names

    def _is_package_require(self, call: Node, package_name: str) -> bool:
        function = call.child_by_field_name("function")
        arguments = call.child_by_field_name("arguments")
        if function is None or arguments is None:
            return False
        if not (
            (function.type == "identifier" and _text(function) == "require")
            or function.type == "import"
        ):
            return False
        first_arg = next(iter(arguments.named_children), None)
        if first_arg is None:
            return False
        specifier = _string_value(first_arg)
        return specifier is not None and is_package_import(specifier, package_name)

    def _identifier_usages(
        self,
        root: Node,
        bound_names: set[str],
        file_path: str,
        context: FileContext,
    ) -> list[UsageLocation]:
        usages: list[UsageLocation] = []
        for node in self._walk(root):
            if node.type == "import_statement":
                continue
            if node.type not in ("identifier", "type_identifier"):
                continue
            if _text(node) not in bound_names or self._inside_import(node):
                continue

            classified = self._classify(node)
            if classified is None:
                continue
            usage_type, code_node = classified
            usages.append(
                UsageLocation(
                    file=file_path,
                    line=node.start_point[0] + 1,
                    column=node.start_point[1],
                    type=usage_type,
                    code=_snippet(code_node),
                    context=context,
                )
            )
        return usages

    @staticmethod
    def _inside_import(node: Node) -> bool:
        parent = node.parent
        while parent is not None:
            if parent.type == "import_statement":
                return True
            parent = parent.parent
        return False

    @staticmethod
    def _classify(node: Node) -> tuple[UsageType, Node] | None:
        parent = node.parent
        if parent is None:
            return None

        if parent.type in ("call_expression", "new_expression"):
            callee = parent.child_by_field_name(
                "function" if parent.type == "call_expression" else "constructor"
            )
            if _same(callee, node):
                return UsageType.FUNCTION_CALL, parent

        if parent.type == "member_expression" and _same(parent.child_by_field_name("object"), node):
            return UsageType.PROPERTY_ACCESS, parent

        if node.type == "type_identifier" or parent.type in TYPE_PARENTS:
            return UsageType.TYPE_REFERENCE, node

        return None

