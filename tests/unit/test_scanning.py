"""Tests for file classification and the usage scanners."""

from pathlib import Path

import pytest

from renovate_safety.core.models import FileContext, UsageLocation, UsageType
from renovate_safety.scanning import (
    JavaScriptUsageScanner,
    ProjectFiles,
    PythonUsageScanner,
    categorize_usages,
    classify_file_context,
    distribution_name_pattern,
    grep_config_files,
    import_names_for,
    is_critical_path,
    is_package_import,
)


class TestPackageImportMatching:
    """Tests for module specifier matching."""

    @pytest.mark.parametrize(
        ("specifier", "package", "expected"),
        [
            ("express", "express", True),
            ("express/lib/router", "express", True),
            ("express-session", "express", False),
            ("@scope/pkg/sub", "@scope/pkg", True),
            ("@scope/pkg-extra", "@scope/pkg", False),
            ("@types/express", "express", False),
            ("", "express", False),
        ],
    )
    def test_matching(self, specifier: str, package: str, expected: bool) -> None:
        """Test subpaths match and prefixes of other names do not."""
        assert is_package_import(specifier, package) is expected


class TestClassifyFileContext:
    """Tests for path-based file classification."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/__tests__/app.js", FileContext.TEST),
            ("src/app.spec.ts", FileContext.TEST),
            ("src/app.test.js", FileContext.TEST),
            ("tests/test_client.py", FileContext.TEST),
            ("conftest.py", FileContext.TEST),
            ("package.json", FileContext.CONFIG),
            ("webpack.config.js", FileContext.CONFIG),
            (".eslintrc.js", FileContext.CONFIG),
            ("requirements-dev.txt", FileContext.CONFIG),
            ("dist/bundle.js", FileContext.BUILD),
            ("src/index.ts", FileContext.PRODUCTION),
            ("src/latest.ts", FileContext.PRODUCTION),
            ("src/contest/entry.py", FileContext.PRODUCTION),
            ("src/testHelpers.ts", FileContext.TEST),
            ("src/userTests.js", FileContext.TEST),
            ("lib/mytest.py", FileContext.TEST),
            ("src/__mocks__/fs.js", FileContext.TEST),
            ("src/components/Button.specs.tsx", FileContext.TEST),
            ("src/latest_test.py", FileContext.TEST),
            ("lib/inspect.py", FileContext.PRODUCTION),
            ("src/fastest-route.ts", FileContext.PRODUCTION),
            ("src/specificity.js", FileContext.PRODUCTION),
        ],
    )
    def test_classification(self, path: str, expected: FileContext) -> None:
        """Test test, config, build and production paths."""
        assert classify_file_context(path) == expected

    def test_is_pure(self) -> None:
        """Test repeated calls give the same answer."""
        results = {classify_file_context("lib/__tests__/a.js") for _ in range(5)}
        assert results == {FileContext.TEST}

    def test_windows_separators(self) -> None:
        """Test backslash paths are classified like POSIX ones."""
        assert classify_file_context("src\\__tests__\\app.js") == FileContext.TEST


class TestCriticalPaths:
    """Tests for critical path detection."""

    def test_entry_stems(self) -> None:
        """Test index/main/server style files are critical."""
        assert is_critical_path("src/deep/nested/index.ts")
        assert is_critical_path("server.js")

    def test_top_level_core_module(self) -> None:
        """Test files directly inside src/lib are critical."""
        assert is_critical_path("src/helpers.ts")
        assert not is_critical_path("src/utils/helpers.ts")

    def test_declared_entry_points(self) -> None:
        """Test manifest entry points are critical."""
        assert is_critical_path("bin/tool.js", ["./bin/tool.js"])
        assert not is_critical_path("bin/tool.js")


class TestCategorizeUsages:
    """Tests for usage aggregation."""

    def _location(self, file: str, context: FileContext, usage_type: UsageType = UsageType.IMPORT, code: str = "x") -> UsageLocation:
        return UsageLocation(file=file, line=1, column=0, type=usage_type, code=code, context=context)

    def test_counts_and_critical_paths(self) -> None:
        """Test counts per context and sorted critical paths."""
        usage = categorize_usages(
            [
                self._location("src/server.js", FileContext.PRODUCTION),
                self._location("src/index.js", FileContext.PRODUCTION),
                self._location("src/utils/a.js", FileContext.PRODUCTION),
                self._location("tests/a.test.js", FileContext.TEST),
                self._location("package.json", FileContext.CONFIG, UsageType.CONFIG),
                self._location("dist/out.js", FileContext.BUILD),
            ]
        )
        assert usage.total_usage_count == 6
        assert usage.production_usage_count == 3
        assert usage.test_usage_count == 1
        assert usage.config_usage_count == 2
        assert usage.critical_paths == ["src/index.js", "src/server.js"]
        assert not usage.has_dynamic_imports

    def test_dynamic_imports(self) -> None:
        """Test dynamic import() calls set the flag."""
        usage = categorize_usages(
            [self._location("src/lazy.js", FileContext.PRODUCTION, UsageType.REQUIRE, "const m = await import('express')")]
        )
        assert usage.has_dynamic_imports


class TestJavaScriptScanner:
    """Tests for the tree-sitter JavaScript/TypeScript scanner."""

    @pytest.fixture
    def scanner(self) -> JavaScriptUsageScanner:
        return JavaScriptUsageScanner()

    def test_imports_requires_and_usages(self, scanner: JavaScriptUsageScanner) -> None:
        """Test ESM imports, require calls and traced identifiers."""
        content = (
            "import express from 'express';\n"
            "import session from 'express-session';\n"
            "const router = require('express/lib/router');\n"
            "\n"
            "const app = express();\n"
            "app.use(session());\n"
            "express.static('public');\n"
        )
        locations = scanner.scan("src/app.js", content, "express")

        by_line = {loc.line: loc.type for loc in locations}
        assert by_line[1] == UsageType.IMPORT
        assert 2 not in by_line
        assert by_line[3] == UsageType.REQUIRE
        assert by_line[5] == UsageType.FUNCTION_CALL
        assert by_line[7] == UsageType.PROPERTY_ACCESS
        assert all(loc.context == FileContext.PRODUCTION for loc in locations)

    def test_typescript_type_references(self, scanner: JavaScriptUsageScanner) -> None:
        """Test named imports used as types."""
        content = (
            "import { Request } from 'express';\n"
            "export function handle(req: Request): void {}\n"
        )
        locations = scanner.scan("src/handler.ts", content, "express")
        assert [loc.type for loc in locations] == [UsageType.IMPORT, UsageType.TYPE_REFERENCE]

    def test_scoped_package_and_reexport(self, scanner: JavaScriptUsageScanner) -> None:
        """Test scoped names and export-from statements."""
        content = "export { parse } from '@babel/parser/lib';\nimport x from '@babel/parser-extra';\n"
        locations = scanner.scan("src/index.ts", content, "@babel/parser")
        assert len(locations) == 1
        assert locations[0].type == UsageType.IMPORT

    def test_test_file_context(self, scanner: JavaScriptUsageScanner) -> None:
        """Test locations carry the file context."""
        locations = scanner.scan("src/app.test.js", "const e = require('express');\n", "express")
        assert [loc.context for loc in locations] == [FileContext.TEST]

    def test_unknown_extension(self, scanner: JavaScriptUsageScanner) -> None:
        """Test non-JavaScript files are skipped."""
        assert scanner.scan("README.md", "import express from 'express'", "express") == []


class TestPythonScanner:
    """Tests for the Python scanner."""

    def test_import_names(self) -> None:
        """Test distribution to module name mapping."""
        assert import_names_for("PyYAML") == ("yaml",)
        assert import_names_for("types-requests") == ("requests",)
        assert import_names_for("python-dateutil") == ("dateutil",)
        assert import_names_for("my.package") == ("my_package",)

    def test_imports_and_calls(self) -> None:
        """Test import statements and uses of the bound names."""
        content = (
            "import requests\n"
            "from requests.adapters import HTTPAdapter\n"
            "\n"
            "def fetch(url):\n"
            "    response = requests.get(url)\n"
            "    return response.json()\n"
        )
        locations = PythonUsageScanner("requests").scan("app/client.py", content)
        assert [(loc.line, loc.type) for loc in locations] == [
            (1, UsageType.IMPORT),
            (2, UsageType.IMPORT),
            (5, UsageType.FUNCTION_CALL),
        ]

    def test_similar_module_names_do_not_match(self) -> None:
        """Test requests_toolbelt is not requests."""
        content = "import requests_toolbelt\nfrom requests_toolbelt import sessions\n"
        assert PythonUsageScanner("requests").scan("app/x.py", content) == []

    def test_alias_and_multiline_import(self) -> None:
        """Test aliases and parenthesized import lists."""
        content = (
            "import numpy as np\n"
            "from numpy import (\n"
            "    array,\n"
            "    zeros,\n"
            ")\n"
            "x = np.array([1])\n"
            "y = zeros(3)\n"
        )
        locations = PythonUsageScanner("numpy").scan("lib/calc.py", content)
        types = [loc.type for loc in locations]
        assert types.count(UsageType.IMPORT) == 2
        assert types.count(UsageType.FUNCTION_CALL) == 2

    def test_dynamic_import(self) -> None:
        """Test importlib.import_module calls."""
        content = "import importlib\nmod = importlib.import_module('yaml')\n"
        locations = PythonUsageScanner("pyyaml").scan("app/loader.py", content)
        assert [loc.type for loc in locations] == [UsageType.REQUIRE]

    def test_string_literals_are_not_code(self) -> None:
        """Test import-like text inside a docstring yields nothing."""
        content = 'DOC = """\nimport requests\nrequests.get(url)\n"""\n'
        assert PythonUsageScanner("requests").scan("app/docs.py", content) == []

    def test_type_annotations(self) -> None:
        """Test imported names in annotations are type references."""
        content = (
            "from requests import Response, Session\n"
            "\n"
            "def fetch(session: Session, url: str) -> Response:\n"
            "    return session.get(url)\n"
        )
        locations = PythonUsageScanner("requests").scan("app/client.py", content)
        assert [(loc.line, loc.type) for loc in locations] == [
            (1, UsageType.IMPORT),
            (3, UsageType.TYPE_REFERENCE),
            (3, UsageType.TYPE_REFERENCE),
        ]

    def test_attribute_chains(self) -> None:
        """Test nested attribute access and calls through submodules."""
        content = (
            "import requests.adapters as adapters\n"
            "RETRIES = adapters.DEFAULT_RETRIES\n"
            "adapter = adapters.HTTPAdapter(max_retries=RETRIES)\n"
            "other.adapters = None\n"
        )
        locations = PythonUsageScanner("requests").scan("app/retry.py", content)
        assert [(loc.line, loc.type) for loc in locations] == [
            (1, UsageType.IMPORT),
            (2, UsageType.PROPERTY_ACCESS),
            (3, UsageType.FUNCTION_CALL),
        ]
        assert locations[2].code == "adapter = adapters.HTTPAdapter(max_retries=RETRIES)"

    def test_relative_imports_are_ignored(self) -> None:
        """Test project-local relative imports never match."""
        content = "from . import requests\nfrom .requests import get\n"
        assert PythonUsageScanner("requests").scan("app/x.py", content) == []


class TestConfigFileGrep:
    """Tests for literal package search in config files."""

    def test_whole_token_matches(self, temp_dir: Path) -> None:
        """Test react does not match react-dom or @types/react."""
        (temp_dir / "package.json").write_text(
            '{\n  "dependencies": {\n    "react": "^18.2.0",\n    "react-dom": "^18.2.0",\n    "@types/react": "^18"\n  }\n}\n'
        )
        locations = grep_config_files(ProjectFiles(temp_dir), "react", ["*.json"])
        assert [(loc.file, loc.line) for loc in locations] == [("package.json", 3)]
        assert locations[0].type == UsageType.CONFIG
        assert locations[0].context == FileContext.CONFIG

    def test_lockfiles_are_skipped(self, temp_dir: Path) -> None:
        """Test lockfiles never count as config usage."""
        (temp_dir / "package-lock.json").write_text('{"packages": {"node_modules/react": {}}}')
        assert grep_config_files(ProjectFiles(temp_dir), "react", ["*.json"]) == []

    def test_context_follows_the_file_path(self, temp_dir: Path) -> None:
        """Test a manifest under tests/ is test context but still config usage."""
        (temp_dir / "requirements.txt").write_text("requests==2.31.0\n")
        (temp_dir / "tests").mkdir()
        (temp_dir / "tests" / "requirements.txt").write_text("requests\npytest\n")

        locations = grep_config_files(ProjectFiles(temp_dir), "requests", ["requirements*.txt"])
        contexts = {loc.file: loc.context for loc in locations}

        assert contexts == {"requirements.txt": FileContext.CONFIG, "tests/requirements.txt": FileContext.TEST}
        assert all(loc.type == UsageType.CONFIG for loc in locations)
        usage = categorize_usages(locations)
        assert usage.config_usage_count == 2
        assert usage.test_usage_count == 0

    def test_distribution_spellings(self, temp_dir: Path) -> None:
        """Test every spelling of a PyPI name is found."""
        (temp_dir / "requirements.txt").write_text("python_dateutil==2.8\nPython.Dateutil>=2\n")
        locations = grep_config_files(
            ProjectFiles(temp_dir),
            "python-dateutil",
            ["requirements*.txt"],
            matcher=distribution_name_pattern("python-dateutil"),
        )
        assert [loc.line for loc in locations] == [1, 2]


class TestProjectFiles:
    """Tests for project file discovery."""

    def test_excluded_directories_are_pruned(self, temp_dir: Path) -> None:
        """Test node_modules is never walked."""
        (temp_dir / "node_modules" / "x").mkdir(parents=True)
        (temp_dir / "node_modules" / "x" / "index.js").write_text("")
        (temp_dir / "src").mkdir()
        (temp_dir / "src" / "index.js").write_text("")
        files = ProjectFiles(temp_dir)
        assert [files.relative(p) for p in files.find([".js"])] == ["src/index.js"]

    def test_oversized_files_are_skipped(self, temp_dir: Path) -> None:
        """Test read_text returns None past the size limit."""
        big = temp_dir / "big.js"
        big.write_text("x" * 2048)
        assert ProjectFiles(temp_dir, max_file_size=1024).read_text(big) is None
