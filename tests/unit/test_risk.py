"""Tests for the risk aggregator."""

from collections.abc import Callable

import pytest

from renovate_safety.core.models import (
    RISK_LEVEL_ORDER,
    BreakingChange,
    ChangeSeverity,
    DependencyType,
    EstimatedEffort,
    EvidenceStatus,
    PackageUpdate,
    RiskLevel,
    UsageAnalysis,
)
from renovate_safety.risk import Evidence, assess_risk, is_type_only_package, score_to_level

FOUND = Evidence(EvidenceStatus.FOUND, 0.9)
NOT_FOUND = Evidence(EvidenceStatus.NOT_FOUND)

UsageFactory = Callable[..., UsageAnalysis]


def _breaking(text: str = "remove X", confidence: float = 0.9, severity: ChangeSeverity = ChangeSeverity.BREAKING) -> BreakingChange:
    return BreakingChange(text=text, severity=severity, source="release-notes", confidence=confidence)


class TestNoBreakingChanges:
    """Tests for updates without breaking changes."""

    def test_unused_patch_is_safe(self, make_usage: UsageFactory) -> None:
        """Test an unused patch with an empty changelog is safe."""
        update = PackageUpdate(name="left-pad", from_version="1.0.0", to_version="1.0.1")
        risk = assess_risk(update, [], make_usage(), NOT_FOUND)
        assert risk.level == RiskLevel.SAFE
        assert risk.estimated_effort == EstimatedEffort.NONE
        assert risk.testing_scope.value == "none"

    def test_used_without_evidence_is_unknown(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test used packages without changelog evidence stay unknown."""
        risk = assess_risk(minor_update, [], make_usage(production=3), NOT_FOUND)
        assert risk.level == RiskLevel.UNKNOWN
        assert any(f.startswith("No changelog evidence found") for f in risk.factors)

    def test_used_with_clean_evidence_is_low(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test documented non-breaking minor updates are low."""
        risk = assess_risk(minor_update, [], make_usage(production=3), FOUND)
        assert risk.level == RiskLevel.LOW
        assert risk.confidence == 0.9

    def test_major_with_clean_evidence_is_medium(self, make_usage: UsageFactory) -> None:
        """Test major bumps of used packages are at least medium."""
        update = PackageUpdate(name="express", from_version="4.18.2", to_version="5.0.0")
        risk = assess_risk(update, [], make_usage(production=1), FOUND)
        assert risk.level == RiskLevel.MEDIUM

    def test_usage_not_analyzed(self, minor_update: PackageUpdate) -> None:
        """Test a missing usage scan without evidence is unknown."""
        assert assess_risk(minor_update, [], None, NOT_FOUND).level == RiskLevel.UNKNOWN
        assert assess_risk(minor_update, [], None, FOUND).level == RiskLevel.LOW

    def test_failed_evidence_factor(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test failures are reported differently from missing evidence."""
        evidence = Evidence(EvidenceStatus.FAILED, errors=["GitHub releases: rate limit exceeded"])
        risk = assess_risk(minor_update, [], make_usage(production=1), evidence)
        assert "Changelog could not be fetched: GitHub releases: rate limit exceeded" in risk.factors


class TestWithBreakingChanges:
    """Tests for updates with breaking changes."""

    def test_unused_is_low(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test breaking changes without code usage are latent."""
        risk = assess_risk(minor_update, [_breaking()], make_usage(config=2), FOUND)
        assert risk.level == RiskLevel.LOW
        assert "No code usage found; breaking changes are latent" in risk.factors
        assert "Referenced in 2 config location(s)" in risk.factors

    def test_usage_unknown_is_medium(self, minor_update: PackageUpdate) -> None:
        """Test breaking changes with no usage scan are medium."""
        risk = assess_risk(minor_update, [_breaking()], None, FOUND)
        assert risk.level == RiskLevel.MEDIUM

    def test_production_usage_with_critical_path(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test real exposure is high or critical."""
        usage = make_usage(production=5, critical_paths=["src/index.js"])
        risk = assess_risk(minor_update, [_breaking()], usage, FOUND)
        assert risk.level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        assert "Used in critical paths: src/index.js" in risk.factors
        assert risk.score == pytest.approx(45.0)

    def test_major_jump_escalates_to_critical(self, make_usage: UsageFactory) -> None:
        """Test several breaking changes in a major bump are critical."""
        update = PackageUpdate(name="express", from_version="4.18.2", to_version="5.0.0")
        usage = make_usage(production=8, critical_paths=["src/server.js", "src/index.js"])
        risk = assess_risk(update, [_breaking("a"), _breaking("b")], usage, FOUND)
        assert risk.level == RiskLevel.CRITICAL
        assert risk.estimated_effort == EstimatedEffort.SIGNIFICANT

    def test_single_low_confidence_signal_capped(self, make_usage: UsageFactory) -> None:
        """Test a lone generic entry cannot reach critical."""
        update = PackageUpdate(name="express", from_version="1.0.0", to_version="3.0.0")
        usage = make_usage(production=8, critical_paths=["src/server.js", "src/index.js"])
        risk = assess_risk(update, [_breaking("Major version update", confidence=0.7)], usage, Evidence(EvidenceStatus.FOUND, 0.8))
        assert risk.level == RiskLevel.HIGH
        assert "Single low-confidence signal; level capped at high" in risk.factors

    def test_small_exposure_has_medium_floor(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test any used package with breaking changes is at least medium."""
        risk = assess_risk(minor_update, [_breaking(severity=ChangeSeverity.WARNING)], make_usage(test=1), FOUND)
        assert risk.level == RiskLevel.MEDIUM

    def test_type_only_and_tests_mitigate(self, make_usage: UsageFactory) -> None:
        """Test type-only packages and test usage lower the score."""
        update = PackageUpdate(name="@types/node", from_version="20.1.0", to_version="20.2.0")
        usage = make_usage(production=2, test=1)
        plain = assess_risk(
            PackageUpdate(name="node-fetch", from_version="20.1.0", to_version="20.2.0"),
            [_breaking()],
            usage,
            FOUND,
        )
        typed = assess_risk(update, [_breaking()], usage, FOUND)
        assert typed.score == plain.score - 10
        assert "Type-only package; runtime behavior is unaffected" in typed.factors
        assert "Existing tests exercise the package" in typed.factors

    def test_adding_breaking_change_never_lowers_level(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test the level is monotone in the number of breaking changes."""
        for usage in (make_usage(), make_usage(production=2), make_usage(production=6, critical_paths=["src/index.js"])):
            changes: list[BreakingChange] = []
            previous = RISK_LEVEL_ORDER[assess_risk(minor_update, changes, usage, FOUND).level]
            for index in range(5):
                changes.append(_breaking(f"change {index}", confidence=0.9 if index % 2 else 0.6))
                current = RISK_LEVEL_ORDER[assess_risk(minor_update, changes, usage, FOUND).level]
                assert current >= previous
                previous = current


class TestHelpers:
    """Tests for helper functions."""

    @pytest.mark.parametrize(
        ("score", "level"),
        [(10, RiskLevel.MEDIUM), (30, RiskLevel.MEDIUM), (31, RiskLevel.HIGH), (55, RiskLevel.HIGH), (56, RiskLevel.CRITICAL)],
    )
    def test_score_to_level(self, score: float, level: RiskLevel) -> None:
        """Test the inclusive thresholds."""
        assert score_to_level(score) == level

    def test_type_only_package(self) -> None:
        """Test name and context based detection."""
        assert is_type_only_package("@types/react")
        assert is_type_only_package("types-requests")
        assert is_type_only_package("boto3-stubs")
        assert is_type_only_package("anything", {"is_type_stub": True})
        assert not is_type_only_package("react")

    def test_development_dependency_mitigates(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test a dev-only dependency scores lower than a production one."""
        usage = make_usage(production=4, critical_paths=["src/index.js"])
        production = assess_risk(
            minor_update, [_breaking()], usage, FOUND, {"dependency_type": DependencyType.PRODUCTION.value, "is_direct": True}
        )
        development = assess_risk(
            minor_update, [_breaking()], usage, FOUND, {"dependency_type": DependencyType.DEVELOPMENT.value, "is_direct": True}
        )

        assert development.score == production.score - 5
        assert "Development-only dependency; not shipped to production" in development.factors
        assert "Development-only dependency; not shipped to production" not in production.factors
        assert RISK_LEVEL_ORDER[development.level] >= RISK_LEVEL_ORDER[RiskLevel.MEDIUM]

    def test_context_factors(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test deprecation and yanked context become factors."""
        risk = assess_risk(minor_update, [], make_usage(), FOUND, {"deprecated": "use y", "yanked": True})
        assert "Target version is deprecated: use y" in risk.factors
        assert "Target version was yanked from PyPI" in risk.factors

    def test_transitive_factor(self, make_usage: UsageFactory, minor_update: PackageUpdate) -> None:
        """Test packages only a lockfile installs are called out."""
        context = {"dependency_type": DependencyType.TRANSITIVE.value, "is_direct": False}
        risk = assess_risk(minor_update, [], make_usage(), FOUND, context)
        assert "Transitive dependency; not declared in the project manifests" in risk.factors
        assert "Transitive dependency; not declared in the project manifests" not in assess_risk(
            minor_update, [], make_usage(), FOUND, {"is_direct": True}
        ).factors
