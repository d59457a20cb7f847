"""Tests for breaking-change extraction from changelogs and package diffs."""

from renovate_safety.core.models import (
    BreakingChange,
    ChangeCategory,
    ChangelogDiff,
    ChangelogSource,
    ChangeSeverity,
    Ecosystem,
    PackageUpdate,
)
from renovate_safety.extraction import (
    BreakingChangeExtractor,
    DiffAnalyzer,
    extract_breaking_changes,
    filter_by_token_limit,
    has_breaking_markers,
    merge_breaking_changes,
    normalize_change_key,
    split_unified_diff,
    summarize_breaking_changes,
)
from renovate_safety.extraction.diff import minimum_runtime_version, normalize_parameters, python_api
from renovate_safety.registry.archive import diff_archives

CHANGELOG = """# Changelog

## 3.0.0

BREAKING CHANGE: remove X

### Breaking Changes

- remove X
- `render()` now returns a Promise
  instead of a string

### Features

- add Y

```js
// BREAKING CHANGE: this is only an example
```

[DEPRECATED] legacyMode option
"""


def _change(text: str, severity: ChangeSeverity = ChangeSeverity.BREAKING, confidence: float = 0.8) -> BreakingChange:
    return BreakingChange(text=text, severity=severity, source="release-notes", confidence=confidence)


class TestNormalizeChangeKey:
    """Tests for the deduplication key."""

    def test_marker_and_list_forms_share_a_key(self) -> None:
        """Test prefixes and list markers are dropped."""
        assert normalize_change_key("BREAKING CHANGE: remove X") == "remove x"
        assert normalize_change_key("- remove X.") == "remove x"
        assert normalize_change_key("**BREAKING:** remove   X") == "remove x"


class TestBreakingChangeExtractor:
    """Tests for lexicon and section extraction."""

    def test_marker_and_section_item_deduplicate(self) -> None:
        """Test a marker line and the same section item yield one entry."""
        text = "BREAKING CHANGE: remove X\n\n## Breaking Changes\n\n- remove X\n"
        changes = BreakingChangeExtractor().extract(text, "release-notes")
        assert len(changes) == 1
        assert changes[0].text == "BREAKING CHANGE: remove X"
        assert changes[0].confidence == 0.9

    def test_sections_continuations_and_fences(self) -> None:
        """Test section harvesting, continuation lines and fenced code."""
        changes = BreakingChangeExtractor().extract(CHANGELOG, "release-notes")
        texts = [c.text for c in changes]

        assert "- `render()` now returns a Promise instead of a string" in texts
        assert not any("only an example" in t for t in texts)
        assert not any("add Y" in t for t in texts)
        assert sum(1 for t in texts if normalize_change_key(t) == "remove x") == 1

        deprecated = [c for c in changes if "legacyMode" in c.text]
        assert len(deprecated) == 1
        assert deprecated[0].severity == ChangeSeverity.WARNING
        assert deprecated[0].category == ChangeCategory.DEPRECATION

    def test_idempotent_and_ordered(self) -> None:
        """Test two runs give identical, severity-ordered output."""
        extractor = BreakingChangeExtractor()
        first = extractor.extract(CHANGELOG, "release-notes")
        second = extractor.extract(CHANGELOG, "release-notes")

        assert first == second
        keys = [normalize_change_key(c.text) for c in first]
        assert len(keys) == len(set(keys))
        severities = [c.severity for c in first]
        assert severities == sorted(severities, key=[ChangeSeverity.BREAKING, ChangeSeverity.REMOVAL, ChangeSeverity.WARNING].index)

    def test_empty_text(self) -> None:
        """Test empty input gives no changes."""
        assert BreakingChangeExtractor().extract("   \n", "release-notes") == []

    def test_has_breaking_markers(self) -> None:
        """Test marker detection ignores warnings."""
        assert has_breaking_markers("## Breaking Changes\n- x")
        assert has_breaking_markers("💥 dropped Node 14")
        assert not has_breaking_markers("[DEPRECATED] old option\n- fix typo")


class TestMergeAndBudget:
    """Tests for merging, token budgets and summaries."""

    def test_merge_keeps_first_group(self) -> None:
        """Test earlier (more trusted) groups win duplicates."""
        extracted = [_change("Remove X", confidence=0.9)]
        summarized = [BreakingChange(text="remove x.", severity=ChangeSeverity.WARNING, source="llm", confidence=0.5)]
        merged = merge_breaking_changes(extracted, summarized)
        assert merged == extracted

    def test_filter_by_token_limit(self) -> None:
        """Test the highest-priority changes that fit are kept."""
        changes = [
            _change("w" * 40, ChangeSeverity.WARNING),
            _change("b" * 40, ChangeSeverity.BREAKING),
            _change("r" * 40, ChangeSeverity.REMOVAL),
        ]
        kept = filter_by_token_limit(changes, 20)
        assert [c.severity for c in kept] == [ChangeSeverity.BREAKING, ChangeSeverity.REMOVAL]

    def test_summary(self) -> None:
        """Test counts per severity."""
        summary = summarize_breaking_changes([_change("a"), _change("b", ChangeSeverity.WARNING)])
        assert summary == {"total": 2, "breaking": 1, "removal": 0, "warning": 1}


NPM_DIFF = """# npm diff pkg 1.0.0 -> 1.1.0
# files changed: 3, additions: 4, deletions: 4, export removals: 2

--- a/package.json
+++ b/package.json
@@ -1,3 +1,3 @@
-  "engines": { "node": ">=14" }
+  "engines": { "node": ">=18" }
--- a/lib/index.js
+++ b/lib/index.js
@@ -1,4 +1,4 @@
-export function oldApi(a, b) {
-export function fetchData(url, options) {
+export function fetchData(url) {
+export function newHelper() {
--- a/test/index.test.js
+++ b/test/index.test.js
@@ -1,1 +1,1 @@
-export function fixture() {
+export function fixture2() {
"""


class TestDiffAnalyzer:
    """Tests for registry diff analysis."""

    def test_split_unified_diff(self) -> None:
        """Test the statistics preamble is skipped and files are split."""
        files = split_unified_diff(NPM_DIFF)
        assert [f.path for f in files] == ["package.json", "lib/index.js", "test/index.test.js"]
        assert files[1].removed == ["export function oldApi(a, b) {", "export function fetchData(url, options) {"]

    def test_npm_diff(self) -> None:
        """Test runtime requirement, removed exports and changed signatures."""
        update = PackageUpdate(name="pkg", from_version="1.0.0", to_version="1.1.0")
        changes = DiffAnalyzer(Ecosystem.NPM).analyze(split_unified_diff(NPM_DIFF), update)
        texts = [c.text for c in changes]

        assert "Node.js requirement raised from >=14 to >=18" in texts
        assert "API functions or classes removed: oldApi" in texts
        assert "Function signatures changed: fetchData" in texts
        assert not any("fixture" in t for t in texts)
        assert changes[0].category == ChangeCategory.RUNTIME_REQUIREMENT

    def test_python_diff(self) -> None:
        """Test removed top-level definitions in a Python package."""
        diff = (
            "--- a/pkg/api.py\n+++ b/pkg/api.py\n@@ -1,2 +1,1 @@\n"
            "-def legacy(x):\n def current(x, y):\n"
            "--- a/pkg/_internal.py\n+++ b/pkg/_internal.py\n@@ -1,1 +0,0 @@\n-def hidden():\n"
        )
        update = PackageUpdate(name="pkg", from_version="2.0.0", to_version="2.1.0")
        changes = DiffAnalyzer(Ecosystem.PYPI).analyze(split_unified_diff(diff), update)
        assert [c.text for c in changes] == ["API functions or classes removed: legacy"]

    def test_python_multiline_signature(self) -> None:
        """Test signatures spread over several lines are compared as parsed code."""
        old = (
            "__all__ = [\"fetch\", \"Client\"]\n"
            "\n"
            "def fetch(\n"
            "    url,\n"
            "    timeout=None,\n"
            "):\n"
            "    return url\n"
            "\n"
            "class Client:\n"
            "    pass\n"
        )
        new = old.replace("    timeout=None,\n", "    *,\n    retries=3,\n")
        diff = diff_archives({"pkg/api.py": old}, {"pkg/api.py": new}).content
        update = PackageUpdate(name="pkg", from_version="2.0.0", to_version="2.1.0")

        changes = DiffAnalyzer(Ecosystem.PYPI).analyze(split_unified_diff(diff), update)

        assert [c.text for c in changes] == ["Function signatures changed: fetch"]

    def test_python_body_change_is_not_breaking(self) -> None:
        """Test edits inside a function body leave the API alone."""
        old = "def fetch(\n    url,\n):\n    return url\n\ndef _helper():\n    pass\n"
        new = "def fetch(\n    url,\n):\n    return url.strip()\n"
        diff = diff_archives({"pkg/api.py": old}, {"pkg/api.py": new}).content
        update = PackageUpdate(name="pkg", from_version="2.0.0", to_version="2.0.1")
        assert DiffAnalyzer(Ecosystem.PYPI).analyze(split_unified_diff(diff), update) == []

    def test_python_api(self) -> None:
        """Test public definitions and normalized parameters."""
        source = "def get(url, /, *args, key, **kw):\n    pass\n\nasync def _private():\n    pass\n\nclass Session:\n    pass\n"
        assert python_api(source) == {"get": "url,/,*args,key,**kw", "Session": None}
        assert python_api("def broken(:\n") is None

    def test_major_without_specific_changes(self) -> None:
        """Test a generic entry for major bumps with nothing specific found."""
        update = PackageUpdate(name="pkg", from_version="1.0.0", to_version="2.0.0")
        changes = DiffAnalyzer(Ecosystem.NPM).analyze([], update)
        assert len(changes) == 1
        assert changes[0].text.startswith("Major version update (1.0.0 → 2.0.0)")
        assert changes[0].confidence == 0.7

    def test_runtime_from_metadata(self) -> None:
        """Test requirements passed from registry metadata."""
        update = PackageUpdate(name="lib", from_version="1.0.0", to_version="1.1.0")
        changes = DiffAnalyzer(Ecosystem.PYPI).analyze([], update, runtime_before=">=3.8", runtime_after=">=3.10")
        assert [c.text for c in changes] == ["Python requirement raised from >=3.8 to >=3.10"]

    def test_helpers(self) -> None:
        """Test requirement and parameter normalization."""
        assert minimum_runtime_version("<4,>=3.8") == "3.8"
        assert minimum_runtime_version("^18 || ^20") == "18"
        assert normalize_parameters("a: string, b?: number = 3") == "a,b"
        assert normalize_parameters("private readonly x: Map<string, number>") == "x"


class TestExtractBreakingChanges:
    """Tests for the dispatch on evidence source."""

    def test_no_changelog(self) -> None:
        """Test missing evidence gives no changes."""
        update = PackageUpdate(name="left-pad", from_version="1.0.0", to_version="1.0.1")
        assert extract_breaking_changes(update, None, Ecosystem.NPM) == []

    def test_prose_source_uses_lexicon(self) -> None:
        """Test release notes are read as prose with the source recorded."""
        update = PackageUpdate(name="pkg", from_version="1.0.0", to_version="2.0.0")
        changelog = ChangelogDiff(
            content="## 2.0.0\n\nBREAKING: drop callbacks",
            source=ChangelogSource.RELEASE_NOTES,
            from_version="1.0.0",
            to_version="2.0.0",
        )
        changes = extract_breaking_changes(update, changelog, Ecosystem.NPM)
        assert [(c.text, c.source) for c in changes] == [("BREAKING: drop callbacks", "release-notes")]
