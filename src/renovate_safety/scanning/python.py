"""Tree-sitter based usage scanner for Python sources."""

import re
from typing import ClassVar

import tree_sitter_python
from tree_sitter import Language, Node, Parser

from renovate_safety.core.models import UsageLocation, UsageType
from renovate_safety.scanning.context import classify_file_context
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

MAX_SNIPPET_LENGTH = 200

IMPORT_NODES = frozenset({"import_statement", "import_from_statement"})

DYNAMIC_IMPORT_FUNCTIONS = frozenset({"importlib.import_module", "import_module", "__import__"})

# Distributions whose import name cannot be derived from the distribution name
KNOWN_IMPORT_NAMES: dict[str, tuple[str, ...]] = {
    "pyyaml": ("yaml",),
    "beautifulsoup4": ("bs4",),
    "pillow": ("PIL",),
    "scikit-learn": ("sklearn",),
    "python-dateutil": ("dateutil",),
    "opencv-python": ("cv2",),
    "opencv-python-headless": ("cv2",),
    "attrs": ("attr", "attrs"),
    "pygithub": ("github",),
    "python-gitlab": ("gitlab",),
    "protobuf": ("google.protobuf",),
    "python-dotenv": ("dotenv",),
    "msgpack-python": ("msgpack",),
    "pyjwt": ("jwt",),
}


def import_names_for(distribution: str) -> tuple[str, ...]:
    """Module names a distribution is imported under.

    Type stub distributions (``types-requests``, ``requests-stubs``) map to
    the runtime package they describe.
    """
    name = distribution.lower()
    if name.startswith("types-"):
        name = name[len("types-") :]
    elif name.endswith("-stubs"):
        name = name[: -len("-stubs")]

    known = KNOWN_IMPORT_NAMES.get(re.sub(r"[-_.]+", "-", name))
    if known:
        return known
    return (re.sub(r"[-.]+", "_", name),)


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text else ""


def _same(a: Node | None, b: Node) -> bool:
    return a is not None and a.start_byte == b.start_byte and a.end_byte == b.end_byte


def _walk(root: Node):
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _string_value(node: Node) -> str | None:
    """Return the literal value of a string node, or None for f-strings and non-strings."""
    if node.type != "string" or any(child.type == "interpolation" for child in node.children):
        return None
    return "".join(_text(child) for child in node.children if child.type == "string_content")


def _inside_import(node: Node) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.type in IMPORT_NODES:
            return True
        parent = parent.parent
    return False


def _classify(node: Node) -> UsageType | None:
    """Classify one occurrence of an imported name.

    ``name(...)`` and ``name.attr.fn(...)`` are calls, ``name.attr`` is an
    attribute access and a bare name inside an annotation is a type
    reference. Anything else (assignment targets, arguments) is not counted.
    """
    parent = node.parent
    if parent is None:
        return None
    if parent.type == "attribute" and not _same(parent.child_by_field_name("object"), node):
        return None
    if parent.type == "keyword_argument" and _same(parent.child_by_field_name("name"), node):
        return None

    current = node
    climbed = False
    while parent is not None and parent.type == "attribute" and _same(parent.child_by_field_name("object"), current):
        current = parent
        parent = parent.parent
        climbed = True

    if parent is not None and parent.type == "call" and _same(parent.child_by_field_name("function"), current):
        return UsageType.FUNCTION_CALL
    if climbed:
        return UsageType.PROPERTY_ACCESS

    ancestor = node.parent
    while ancestor is not None:
        if ancestor.type == "type":
            return UsageType.TYPE_REFERENCE
        ancestor = ancestor.parent
    return None


class PythonUsageScanner:
    """Finds references to a PyPI distribution in Python files.

    ``import`` and ``from`` statements naming one of the distribution's
    modules produce ``import`` locations. Every name they bind is then traced
    through the syntax tree and classified as a call, an attribute access or
    a type annotation. ``importlib.import_module`` and ``__import__`` calls
    with a literal module name produce ``require`` locations.
    """

    file_extensions: ClassVar[tuple[str, ...]] = (".py", ".pyi")

    def __init__(self, distribution: str) -> None:
        """Initialize the scanner.

        Args:
            distribution: PyPI distribution name.
        """
        self.distribution = distribution
        self.module_names = import_names_for(distribution)
        self._parser = Parser(Language(tree_sitter_python.language()))

    def matches_module(self, module: str) -> bool:
        """Check whether a dotted module path belongs to the distribution."""
        return any(module == name or module.startswith(name + ".") for name in self.module_names)

    def scan(self, file_path: str, content: str) -> list[UsageLocation]:
        """Scan one file.

        Args:
            file_path: Path relative to the project root.
            content: File contents.

        Returns:
            One location per occurrence, in document order.
        """
        tree = self._parser.parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            logger.debug("Syntax errors in %s, results may be partial", file_path)
        context = classify_file_context(file_path)
        lines = content.splitlines()
        locations: list[UsageLocation] = []
        bound_names: set[str] = set()

        def record(node: Node, usage_type: UsageType) -> None:
            row, column = node.start_point
            code = lines[row].strip() if row < len(lines) else ""
            locations.append(
                UsageLocation(
                    file=file_path,
                    line=row + 1,
                    column=column,
                    type=usage_type,
                    code=code[:MAX_SNIPPET_LENGTH],
                    context=context,
                )
            )

        for node in _walk(tree.root_node):
            if node.type in IMPORT_NODES:
                bound = self._import_bindings(node)
                if bound is not None:
                    record(node, UsageType.IMPORT)
                    bound_names.update(bound)
            elif node.type == "call" and self._is_dynamic_import(node):
                record(node, UsageType.REQUIRE)

        if bound_names:
            for node in _walk(tree.root_node):
                if node.type in IMPORT_NODES:
                    continue
                if node.type != "identifier" or _text(node) not in bound_names or _inside_import(node):
                    continue
                usage_type = _classify(node)
                if usage_type is not None:
                    record(node, usage_type)

        locations.sort(key=lambda loc: (loc.line, loc.column))
        return locations

    def _import_bindings(self, node: Node) -> set[str] | None:
        """Names bound by an import of the distribution, or None for other imports."""
        if node.type == "import_from_statement":
            module = node.child_by_field_name("module_name")
            if module is None or module.type != "dotted_name" or not self.matches_module(_text(module)):
                return None
            names: set[str] = set()
            for item in node.children_by_field_name("name"):
                if item.type == "aliased_import":
                    local = item.child_by_field_name("alias") or item.child_by_field_name("name")
                    names.add(_text(local))
                else:
                    names.add(_text(item))
            return names

        names = set()
        matched = False
        for item in node.children_by_field_name("name"):
            alias = None
            if item.type == "aliased_import":
                alias = item.child_by_field_name("alias")
                item = item.child_by_field_name("name")
            module = _text(item)
            if self.matches_module(module):
                matched = True
                names.add(_text(alias) if alias is not None else module.split(".")[0])
        return names if matched else None

    def _is_dynamic_import(self, call: Node) -> bool:
        function = call.child_by_field_name("function")
        arguments = call.child_by_field_name("arguments")
        if function is None or arguments is None or _text(function) not in DYNAMIC_IMPORT_FUNCTIONS:
            return False
        first_arg = next(iter(arguments.named_children), None)
        if first_arg is None:
            return False
        module = _string_value(first_arg)
        return module is not None and self.matches_module(module)
