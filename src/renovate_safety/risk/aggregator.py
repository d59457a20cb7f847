"""Risk aggregation for dependency updates.

Combines extracted breaking changes, the usage scan and the trust in the
changelog evidence into one leveled ``RiskAssessment``. Everything here is a
pure function of its inputs.
"""

from dataclasses import dataclass, field
from typing import Any

from renovate_safety.core.models import (
    RISK_LEVEL_ORDER,
    BreakingChange,
    ChangeSeverity,
    DependencyType,
    EstimatedEffort,
    EvidenceStatus,
    PackageUpdate,
    RiskAssessment,
    RiskLevel,
    TestingScope,
    UsageAnalysis,
)
from renovate_safety.utils.versions import analyze_version_jump


@dataclass(frozen=True)
class RiskWeights:
    """Weights for the breaking-change risk score."""

    # Breaking change severity scoring (0-40 points)
    breaking_weight: int = 15
    removal_weight: int = 12
    warning_weight: int = 5
    max_change_points: int = 40

    # Production usage scoring (0-24 points)
    production_usage_weight: int = 3
    max_usage_points: int = 24

    # Critical path scoring (0-24 points)
    critical_path_weight: int = 12
    max_critical_path_points: int = 24

    # Version jump scoring (0-20 points for major, 2 for minor)
    major_version_weight: int = 10
    max_major_version_points: int = 20
    minor_version_points: int = 2

    # Points added for fully untrusted evidence, scaled by (1 - confidence)
    low_confidence_points: int = 10

    # Mitigations
    type_only_deduction: int = 10
    test_usage_deduction: int = 5
    development_only_deduction: int = 5

    # Level thresholds (inclusive upper bounds)
    medium_threshold: int = 30
    high_threshold: int = 55

    # A lone entry below this confidence cannot push the level past high
    generic_signal_confidence: float = 0.75


DEFAULT_WEIGHTS = RiskWeights()

EFFORT_BY_LEVEL: dict[RiskLevel, EstimatedEffort] = {
    RiskLevel.SAFE: EstimatedEffort.NONE,
    RiskLevel.LOW: EstimatedEffort.MINIMAL,
    RiskLevel.MEDIUM: EstimatedEffort.MODERATE,
    RiskLevel.HIGH: EstimatedEffort.SIGNIFICANT,
    RiskLevel.CRITICAL: EstimatedEffort.SIGNIFICANT,
    RiskLevel.UNKNOWN: EstimatedEffort.UNKNOWN,
}

TESTING_BY_LEVEL: dict[RiskLevel, TestingScope] = {
    RiskLevel.SAFE: TestingScope.NONE,
    RiskLevel.LOW: TestingScope.UNIT,
    RiskLevel.MEDIUM: TestingScope.INTEGRATION,
    RiskLevel.HIGH: TestingScope.FULL_REGRESSION,
    RiskLevel.CRITICAL: TestingScope.FULL_REGRESSION,
    RiskLevel.UNKNOWN: TestingScope.FULL_REGRESSION,
}


@dataclass(frozen=True)
class Evidence:
    """What the changelog acquisition produced, as seen by the aggregator."""

    status: EvidenceStatus
    confidence: float = 0.0
    errors: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status == EvidenceStatus.FOUND


def is_type_only_package(name: str, context: dict[str, Any] | None = None) -> bool:
    """Check for ``@types/*``, ``types-*`` and ``*-stubs`` packages."""
    context = context or {}
    if context.get("is_type_definition") or context.get("is_type_stub"):
        return True
    lowered = name.lower()
    return lowered.startswith(("@types/", "types-")) or lowered.endswith("-stubs")


def _change_points(changes: list[BreakingChange], weights: RiskWeights) -> int:
    per_severity = {
        ChangeSeverity.BREAKING: weights.breaking_weight,
        ChangeSeverity.REMOVAL: weights.removal_weight,
        ChangeSeverity.WARNING: weights.warning_weight,
    }
    return min(sum(per_severity[c.severity] for c in changes), weights.max_change_points)


def score_to_level(score: float, weights: RiskWeights = DEFAULT_WEIGHTS) -> RiskLevel:
    """Map a breaking-change score onto medium, high or critical."""
    if score <= weights.medium_threshold:
        return RiskLevel.MEDIUM
    if score <= weights.high_threshold:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def _max_level(a: RiskLevel, b: RiskLevel) -> RiskLevel:
    return a if RISK_LEVEL_ORDER[a] >= RISK_LEVEL_ORDER[b] else b


def _min_level(a: RiskLevel, b: RiskLevel) -> RiskLevel:
    return a if RISK_LEVEL_ORDER[a] <= RISK_LEVEL_ORDER[b] else b


def _describe_changes(changes: list[BreakingChange]) -> str:
    counts = {severity: 0 for severity in ChangeSeverity}
    for change in changes:
        counts[change.severity] += 1
    parts = [f"{count} {severity.value}" for severity, count in counts.items() if count]
    return f"{len(changes)} breaking change(s) detected ({', '.join(parts)})"


def _assessment(
    level: RiskLevel,
    factors: list[str],
    confidence: float,
    score: float = 0.0,
) -> RiskAssessment:
    return RiskAssessment(
        level=level,
        factors=factors,
        estimated_effort=EFFORT_BY_LEVEL[level],
        testing_scope=TESTING_BY_LEVEL[level],
        confidence=round(max(0.0, min(confidence, 1.0)), 2),
        score=round(max(0.0, min(score, 100.0)), 1),
    )


def assess_risk(
    update: PackageUpdate,
    breaking_changes: list[BreakingChange],
    usage: UsageAnalysis | None,
    evidence: Evidence,
    context: dict[str, Any] | None = None,
    weights: RiskWeights = DEFAULT_WEIGHTS,
) -> RiskAssessment:
    """Assess the risk of one dependency update.

    Args:
        update: The version bump.
        breaking_changes: Deduplicated breaking changes from every source.
        usage: Usage scan result, or None when no scan ran or it failed.
        evidence: Status and confidence of the changelog evidence.
        context: Ecosystem-specific facts from the analyzer.
        weights: Scoring weights.

    Returns:
        The leveled assessment with every contributing factor recorded.
    """
    context = context or {}
    factors: list[str] = []
    jump = analyze_version_jump(update.from_version, update.to_version)

    confidence = evidence.confidence if evidence.found else 0.0

    if not evidence.found:
        reason = "; ".join(evidence.errors) if evidence.errors else "no source had entries for this range"
        if evidence.status == EvidenceStatus.FAILED:
            factors.append(f"Changelog could not be fetched: {reason}")
        else:
            factors.append(f"No changelog evidence found: {reason}")

    if context.get("deprecated"):
        factors.append(f"Target version is deprecated: {context['deprecated']}")
    if context.get("yanked"):
        factors.append("Target version was yanked from PyPI")
    if context.get("is_direct") is False:
        factors.append("Transitive dependency; not declared in the project manifests")

    code_usage = 0 if usage is None else usage.production_usage_count + usage.test_usage_count
    if usage is not None and usage.config_usage_count:
        factors.append(f"Referenced in {usage.config_usage_count} config location(s)")
    if usage is not None and usage.has_dynamic_imports:
        factors.append("Package is imported dynamically; some usages may be missed")

    # No breaking changes
    if not breaking_changes:
        if usage is None:
            factors.append("Usage was not analyzed")
            if not evidence.found:
                return _assessment(RiskLevel.UNKNOWN, factors, confidence)
            factors.append("No breaking changes documented")
            return _assessment(RiskLevel.LOW, factors, confidence)

        if code_usage == 0:
            factors.append("No breaking changes and no code usage found")
            return _assessment(RiskLevel.SAFE, factors, confidence)

        factors.append(f"Used in {code_usage} code location(s)")
        if not evidence.found:
            factors.append("Breaking changes cannot be ruled out without changelog evidence")
            return _assessment(RiskLevel.UNKNOWN, factors, confidence)

        factors.append("No breaking changes documented")
        if jump.major > 0:
            factors.append(f"Major version update ({update.from_version} → {update.to_version})")
            return _assessment(RiskLevel.MEDIUM, factors, confidence)
        return _assessment(RiskLevel.LOW, factors, confidence)

    factors.append(_describe_changes(breaking_changes))

    # Breaking changes with no usage data: assume exposure but do not escalate
    if usage is None:
        factors.append("Usage was not analyzed; assuming the package is used")
        return _assessment(RiskLevel.MEDIUM, factors, confidence)

    # Latent risk only
    if code_usage == 0:
        factors.append("No code usage found; breaking changes are latent")
        return _assessment(RiskLevel.LOW, factors, confidence)

    score = float(_change_points(breaking_changes, weights))

    usage_points = min(usage.production_usage_count * weights.production_usage_weight, weights.max_usage_points)
    score += usage_points
    factors.append(
        f"Used in {usage.production_usage_count} production and {usage.test_usage_count} test location(s)"
    )

    if usage.critical_paths:
        score += min(len(usage.critical_paths) * weights.critical_path_weight, weights.max_critical_path_points)
        factors.append(f"Used in critical paths: {', '.join(usage.critical_paths)}")

    if jump.major > 0:
        score += min(jump.major * weights.major_version_weight, weights.max_major_version_points)
        factors.append(f"Major version update ({update.from_version} → {update.to_version})")
    elif jump.minor > 0:
        score += weights.minor_version_points

    score += (1.0 - confidence) * weights.low_confidence_points
    if confidence < weights.generic_signal_confidence:
        factors.append(f"Low evidence confidence ({confidence:.2f})")

    if is_type_only_package(update.name, context):
        score -= weights.type_only_deduction
        factors.append("Type-only package; runtime behavior is unaffected")
    if usage.test_usage_count > 0:
        score -= weights.test_usage_deduction
        factors.append("Existing tests exercise the package")
    if context.get("dependency_type") == DependencyType.DEVELOPMENT.value:
        score -= weights.development_only_deduction
        factors.append("Development-only dependency; not shipped to production")

    level = _max_level(score_to_level(score, weights), RiskLevel.MEDIUM)
    if len(breaking_changes) == 1 and breaking_changes[0].confidence < weights.generic_signal_confidence:
        capped = _min_level(level, RiskLevel.HIGH)
        if capped != level:
            factors.append("Single low-confidence signal; level capped at high")
        level = capped

    return _assessment(level, factors, confidence, score)
