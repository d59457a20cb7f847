"""Breaking-change detection from a unified diff of two published package versions.

The diff is produced by the registry providers from the two release archives.
Analysis works on changed lines only:

1. Manifest fields: a raised Node.js or Python minimum becomes a
   ``runtime-requirement`` entry.
2. Exports: names removed from public modules and not added back, and
   functions whose normalized parameter list changed. Python modules are
   parsed with ``ast`` when both sides of the diff can be rebuilt; other
   files are matched line by line.
3. Documentation: ``BREAKING CHANGE`` style markers in added changelog lines.
4. A generic major-version entry when nothing more specific was found.
"""

import ast
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from renovate_safety.core.models import (
    BreakingChange,
    ChangeCategory,
    ChangelogSource,
    ChangeSeverity,
    Ecosystem,
    PackageUpdate,
)
from renovate_safety.extraction.lexicon import (
    BREAKING_VERBS,
    DOCUMENTED_DIFF_PATTERNS,
    NON_BREAKING_ADDITION,
)
from renovate_safety.extraction.text import merge_breaking_changes
from renovate_safety.utils.logging import get_logger
from renovate_safety.utils.versions import compare_versions, is_major_upgrade, parse_version

logger = get_logger(__name__)

SOURCE = ChangelogSource.REGISTRY_DIFF.value
MAX_LISTED_NAMES = 10

DOCUMENTATION_PATTERN = re.compile(
    r"\.(md|rst|txt|markdown)$|readme|changelog|changes|history|license|authors",
    re.IGNORECASE,
)
IGNORED_PATH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(^|/)__tests__/",
        r"(^|/)tests?/",
        r"(^|/)test[^/]*\.py$",
        r"\.test\.",
        r"\.spec\.",
        r"(^|/)examples?/",
        r"(^|/)bench(marks)?/",
        r"(^|/)fixtures?/",
        r"(^|/)coverage/",
        r"(^|/)dist/",
        r"(^|/)build/",
        r"\.map$",
    )
)
CODE_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx", ".ts", ".mts", ".cts", ".tsx", ".py", ".pyi")

# Runtime requirement declarations per ecosystem
RUNTIME_PATTERNS: dict[Ecosystem, tuple[re.Pattern[str], ...]] = {
    Ecosystem.NPM: (re.compile(r'"node"\s*:\s*"([^"]+)"'),),
    Ecosystem.PYPI: (
        re.compile(r"^Requires-Python:\s*(.+)$"),
        re.compile(r"""python_requires\s*=\s*["']([^"']+)["']"""),
        re.compile(r"""requires-python\s*=\s*["']([^"']+)["']"""),
    ),
}
RUNTIME_LABELS = {Ecosystem.NPM: "Node.js", Ecosystem.PYPI: "Python"}

_REQUIREMENT_CLAUSE = re.compile(r"(<=?|>=?|\^|~=?|===?|!=)?\s*v?(\d+(?:\.\d+)*)")
_ENTRY_FIELD = re.compile(r'"(main|module|types|typings|import|require|default)"\s*:\s*"([^"]+)"')

_JS_IDENT = r"[A-Za-z_$][\w$]*"
JS_EXPORT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"^export\s+(?:declare\s+)?(?:default\s+)?(?:abstract\s+)?(?:async\s+)?"
        rf"(?:function\*?|class|const|let|var|interface|type|enum|namespace)\s+({_JS_IDENT})"
    ),
    re.compile(rf"^(?:module\.)?exports\.({_JS_IDENT})\s*="),
)
JS_EXPORT_DEFAULT = re.compile(r"^export\s+default\b")
JS_EXPORT_LIST = re.compile(r"^export\s*(?:type\s*)?\{([^}]*)\}")
JS_MODULE_EXPORTS_OBJECT = re.compile(r"^module\.exports\s*=\s*\{([^}]*)\}")
JS_SIGNATURE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"^export\s+(?:default\s+)?(?:async\s+)?function\*?\s+({_JS_IDENT})\s*(?:<[^>]*>)?\s*\(([^)]*)\)"
    ),
    re.compile(rf"^export\s+const\s+({_JS_IDENT})\s*=\s*(?:async\s*)?\(([^)]*)\)\s*(?::[^=]+)?=>"),
    re.compile(rf"^(?:export\s+)?declare\s+function\s+({_JS_IDENT})\s*(?:<[^>]*>)?\s*\(([^)]*)\)"),
)

PY_DEFINITION = re.compile(r"^(?:async\s+def|def|class)\s+([A-Za-z]\w*)")
PY_SIGNATURE = re.compile(r"^(?:async\s+)?def\s+([A-Za-z]\w*)\s*\(([^)]*)\)")

_ACCESS_MODIFIERS = re.compile(r"\b(?:public|private|protected|readonly)\s+")


@dataclass
class FileDiff:
    """Changed lines of one file in a unified diff.

    ``old_lines`` and ``new_lines`` hold each side of the hunks (context plus
    removed or added lines), which is the whole file when the diff was
    produced with full context.
    """

    path: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    old_lines: list[str] = field(default_factory=list)
    new_lines: list[str] = field(default_factory=list)


def _diff_path(header: str) -> str | None:
    path = header.split("\t", 1)[0].strip()
    if path == "/dev/null":
        return None
    for prefix in ("a/", "b/"):
        if path.startswith(prefix):
            return path[len(prefix) :]
    return path


def split_unified_diff(text: str) -> list[FileDiff]:
    """Split a multi-file unified diff into per-file changed lines.

    Anything before the first ``---``/``+++`` header pair (such as a
    statistics preamble) is ignored.
    """
    files: list[FileDiff] = []
    current: FileDiff | None = None
    lines = text.splitlines()

    index = 0
    while index < len(lines):
        line = lines[index]
        if line.startswith("--- ") and index + 1 < len(lines) and lines[index + 1].startswith("+++ "):
            old_path = _diff_path(line[4:])
            new_path = _diff_path(lines[index + 1][4:])
            current = FileDiff(path=new_path or old_path or "")
            files.append(current)
            index += 2
            continue

        if current is not None and not line.startswith("@@"):
            if line.startswith("+"):
                current.added.append(line[1:])
                current.new_lines.append(line[1:])
            elif line.startswith("-"):
                current.removed.append(line[1:])
                current.old_lines.append(line[1:])
            elif line.startswith(" ") or not line:
                current.old_lines.append(line[1:])
                current.new_lines.append(line[1:])
        index += 1

    return files


def is_documentation_path(path: str) -> bool:
    return bool(DOCUMENTATION_PATTERN.search(PurePosixPath(path).name))


def is_ignored_path(path: str) -> bool:
    """Whether a file is excluded from code-level analysis."""
    if is_documentation_path(path):
        return True
    return any(p.search(path) for p in IGNORED_PATH_PATTERNS)


def minimum_runtime_version(requirement: str) -> str | None:
    """Lowest version admitted by a requirement such as ``>=14`` or ``<4,>=3.8``."""
    lower_bounds = [
        m.group(2)
        for m in _REQUIREMENT_CLAUSE.finditer(requirement)
        if not (m.group(1) or "").startswith(("<", "!"))
    ]
    if not lower_bounds:
        return None
    return min(lower_bounds, key=parse_version)


def _split_params(params: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in params:
        if char in "<([{":
            depth += 1
        elif char in ">)]}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return parts


def normalize_parameters(params: str) -> str:
    """Reduce a parameter list to its names and order.

    Optional markers, access modifiers, type annotations, default values and
    whitespace are dropped, so only renamed, added, removed or reordered
    parameters register as a change.
    """
    names: list[str] = []
    for param in _split_params(params):
        param = _ACCESS_MODIFIERS.sub("", param).replace("?", "")
        param = re.split(r"[:=]", param, maxsplit=1)[0]
        param = re.sub(r"\s+", "", param)
        if param:
            names.append(param)
    return ",".join(names)


def _python_parameters(node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
    args = node.args
    names = [a.arg for a in args.posonlyargs]
    if names:
        names.append("/")
    names.extend(a.arg for a in args.args)
    if args.vararg is not None:
        names.append(f"*{args.vararg.arg}")
    elif args.kwonlyargs:
        names.append("*")
    names.extend(a.arg for a in args.kwonlyargs)
    if args.kwarg is not None:
        names.append(f"**{args.kwarg.arg}")
    return ",".join(names)


def python_api(source: str) -> dict[str, str | None] | None:
    """Public top-level definitions of a Python module.

    Names listed in a literal ``__all__`` are public; without one, every
    name not starting with an underscore is.

    Returns:
        Function names mapped to their normalized parameter lists and class
        names mapped to None, or None when the source does not parse.
    """
    try:
        tree = ast.parse(source)
    except (SyntaxError, ValueError):
        return None

    exported: set[str] | None = None
    for node in tree.body:
        if isinstance(node, ast.Assign) and isinstance(node.value, (ast.List, ast.Tuple)):
            if any(isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets):
                exported = {
                    elt.value for elt in node.value.elts if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                }

    api: dict[str, str | None] = {}
    for node in tree.body:
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        if exported is not None and node.name not in exported:
            continue
        if exported is None and node.name.startswith("_"):
            continue
        api[node.name] = None if isinstance(node, ast.ClassDef) else _python_parameters(node)
    return api


def _listed(names: Iterable[str]) -> str:
    ordered = sorted(names)
    shown = ", ".join(ordered[:MAX_LISTED_NAMES])
    if len(ordered) > MAX_LISTED_NAMES:
        shown += f" (+{len(ordered) - MAX_LISTED_NAMES} more)"
    return shown


class DiffAnalyzer:
    """Detects breaking changes in a package diff for one ecosystem."""

    def __init__(self, ecosystem: Ecosystem) -> None:
        self.ecosystem = ecosystem

    def analyze(
        self,
        diffs: list[FileDiff],
        update: PackageUpdate,
        entry_hints: Iterable[str] = (),
        runtime_before: str | None = None,
        runtime_after: str | None = None,
    ) -> list[BreakingChange]:
        """Analyze a package diff.

        Args:
            diffs: Per-file changed lines.
            update: The version bump the diff covers.
            entry_hints: Public entry files declared by the package manifest.
            runtime_before: Runtime requirement of the old version, if known.
            runtime_after: Runtime requirement of the new version, if known.

        Returns:
            Deduplicated breaking changes, sorted by severity and confidence.
        """
        changes: list[BreakingChange] = []

        runtime = self._runtime_requirement_change(diffs, runtime_before, runtime_after)
        if runtime is not None:
            changes.append(runtime)

        hints = self._entry_hints(diffs, entry_hints)
        code_files = [d for d in diffs if self._is_public_code(d.path, hints)]
        changes.extend(self._export_changes(code_files))

        for diff in diffs:
            if is_documentation_path(diff.path):
                changes.extend(self._documented_changes(diff))

        if is_major_upgrade(update.from_version, update.to_version) and not any(
            c.category in (ChangeCategory.RUNTIME_REQUIREMENT, ChangeCategory.API_CHANGE)
            for c in changes
        ):
            changes.append(
                BreakingChange(
                    text=(
                        f"Major version update ({update.from_version} → {update.to_version})"
                        " - potential breaking changes"
                    ),
                    severity=ChangeSeverity.BREAKING,
                    source=SOURCE,
                    category=ChangeCategory.DOCUMENTED_CHANGE,
                    confidence=0.7,
                )
            )

        changes = [c for c in changes if not self._is_addition(c.text)]
        logger.debug("Diff analysis of %s found %d changes", update, len(changes))
        return merge_breaking_changes(changes)

    @staticmethod
    def _is_addition(text: str) -> bool:
        return bool(NON_BREAKING_ADDITION.search(text)) and not BREAKING_VERBS.search(text)

    def _runtime_requirement_change(
        self,
        diffs: list[FileDiff],
        before: str | None,
        after: str | None,
    ) -> BreakingChange | None:
        patterns = RUNTIME_PATTERNS[self.ecosystem]
        for diff in diffs:
            name = PurePosixPath(diff.path).name
            if name not in ("package.json", "PKG-INFO", "METADATA", "setup.py", "setup.cfg", "pyproject.toml"):
                continue
            old = self._first_match(patterns, diff.removed)
            new = self._first_match(patterns, diff.added)
            if new is not None:
                before, after = old or before, new
                break

        if not after:
            return None
        new_min = minimum_runtime_version(after)
        old_min = minimum_runtime_version(before) if before else None
        if new_min is None or (old_min is not None and compare_versions(new_min, old_min) <= 0):
            return None

        label = RUNTIME_LABELS[self.ecosystem]
        text = (
            f"{label} requirement raised from {before} to {after}"
            if before
            else f"{label} requirement added: {after}"
        )
        return BreakingChange(
            text=text,
            severity=ChangeSeverity.BREAKING,
            source=SOURCE,
            category=ChangeCategory.RUNTIME_REQUIREMENT,
            confidence=0.95,
        )

    @staticmethod
    def _first_match(patterns: tuple[re.Pattern[str], ...], lines: list[str]) -> str | None:
        for line in lines:
            for pattern in patterns:
                match = pattern.search(line.strip())
                if match:
                    return match.group(1).strip().strip("\"'")
        return None

    @staticmethod
    def _entry_hints(diffs: list[FileDiff], declared: Iterable[str]) -> set[str]:
        hints = {h for h in declared if h}
        for diff in diffs:
            if PurePosixPath(diff.path).name != "package.json":
                continue
            for line in diff.removed + diff.added:
                for match in _ENTRY_FIELD.finditer(line):
                    hints.add(match.group(2))
        return {h.removeprefix("./").rstrip("/") for h in hints}

    @staticmethod
    def _matches_hint(path: str, hints: set[str]) -> bool:
        stem = re.sub(r"(\.d)?\.[cm]?[jt]sx?$", "", path)
        for hint in hints:
            hint_stem = re.sub(r"(\.d)?\.[cm]?[jt]sx?$", "", hint)
            if path == hint or stem == hint_stem or path.startswith(hint + "/"):
                return True
        return False

    def _is_public_code(self, path: str, hints: set[str]) -> bool:
        if not path.endswith(CODE_EXTENSIONS) or is_ignored_path(path):
            return False
        if self.ecosystem == Ecosystem.PYPI:
            return not any(
                part.startswith("_") and part not in ("__init__.py", "__init__.pyi")
                for part in PurePosixPath(path).parts
            )
        if hints:
            return self._matches_hint(path, hints)
        return True

    def _export_changes(self, files: list[FileDiff]) -> list[BreakingChange]:
        removed: set[str] = set()
        added: set[str] = set()
        removed_signatures: dict[str, str] = {}
        added_signatures: dict[str, str] = {}

        for diff in files:
            if self.ecosystem == Ecosystem.PYPI and self._record_python_api(
                diff, removed, added, removed_signatures, added_signatures
            ):
                continue
            path_gated = self._path_exports_api(diff.path)
            for line in diff.removed:
                removed.update(self._exported_names(line, path_gated))
                self._record_signature(line, removed_signatures)
            for line in diff.added:
                added.update(self._exported_names(line, path_gated))
                self._record_signature(line, added_signatures)

        changes: list[BreakingChange] = []
        true_removals = removed - added
        if true_removals:
            changes.append(
                BreakingChange(
                    text=f"API functions or classes removed: {_listed(true_removals)}",
                    severity=ChangeSeverity.REMOVAL,
                    source=SOURCE,
                    category=ChangeCategory.API_CHANGE,
                    confidence=0.85,
                )
            )

        changed = {
            name
            for name, params in removed_signatures.items()
            if name in added_signatures and added_signatures[name] != params
        }
        if changed:
            changes.append(
                BreakingChange(
                    text=f"Function signatures changed: {_listed(changed)}",
                    severity=ChangeSeverity.BREAKING,
                    source=SOURCE,
                    category=ChangeCategory.API_CHANGE,
                    confidence=0.8,
                )
            )
        return changes

    @staticmethod
    def _record_python_api(
        diff: FileDiff,
        removed: set[str],
        added: set[str],
        removed_signatures: dict[str, str],
        added_signatures: dict[str, str],
    ) -> bool:
        """Compare both sides of a Python module with ``ast``.

        Returns:
            False when either side does not parse, so the caller falls back
            to matching changed lines.
        """
        old_api = python_api("\n".join(diff.old_lines))
        new_api = python_api("\n".join(diff.new_lines))
        if old_api is None or new_api is None:
            return False

        removed.update(set(old_api) - set(new_api))
        added.update(set(new_api) - set(old_api))
        for name, params in old_api.items():
            new_params = new_api.get(name)
            if params is None or (name in new_api and new_params == params):
                continue
            removed_signatures.setdefault(name, params)
            if new_params is not None:
                added_signatures.setdefault(name, new_params)
        for name, params in new_api.items():
            if params is not None and name not in old_api:
                added_signatures.setdefault(name, params)
        return True

    def _path_exports_api(self, path: str) -> bool:
        if self.ecosystem == Ecosystem.PYPI:
            return True
        stem = PurePosixPath(path).name.split(".", 1)[0]
        return bool(re.search(r"(^|/)(src|lib)/", path)) or stem in ("index", "main")

    def _exported_names(self, line: str, path_gated: bool) -> set[str]:
        stripped = line.strip()
        if self.ecosystem == Ecosystem.PYPI:
            match = PY_DEFINITION.match(line)
            return {match.group(1)} if match else set()

        if not path_gated and "export" not in stripped:
            return set()

        for pattern in JS_EXPORT_PATTERNS:
            match = pattern.match(stripped)
            if match:
                return {match.group(1)}

        if JS_EXPORT_DEFAULT.match(stripped):
            return {"default"}

        listed = JS_EXPORT_LIST.match(stripped) or JS_MODULE_EXPORTS_OBJECT.match(stripped)
        if listed:
            names = set()
            for item in listed.group(1).split(","):
                item = item.strip()
                if not item:
                    continue
                if " as " in item:
                    item = item.split(" as ", 1)[1]
                elif ":" in item:
                    item = item.split(":", 1)[0]
                names.add(item.strip())
            return names

        return set()

    def _record_signature(self, line: str, signatures: dict[str, str]) -> None:
        if self.ecosystem == Ecosystem.PYPI:
            patterns: tuple[re.Pattern[str], ...] = (PY_SIGNATURE,)
            candidate = line
        else:
            patterns = JS_SIGNATURE_PATTERNS
            candidate = line.strip()

        for pattern in patterns:
            match = pattern.match(candidate)
            if match:
                signatures.setdefault(match.group(1), normalize_parameters(match.group(2)))
                return

    @staticmethod
    def _documented_changes(diff: FileDiff) -> list[BreakingChange]:
        changes: list[BreakingChange] = []
        for line in diff.added:
            for pattern, confidence in DOCUMENTED_DIFF_PATTERNS:
                match = pattern.search(line)
                if match:
                    changes.append(
                        BreakingChange(
                            text=match.group(1).strip(),
                            severity=ChangeSeverity.BREAKING,
                            source=SOURCE,
                            category=ChangeCategory.DOCUMENTED_CHANGE,
                            confidence=confidence,
                        )
                    )
                    break
        return changes
