"""Core data models shared by the analyzers, the changelog chain and the engine."""

from renovate_safety.core.models import (
    RISK_LEVEL_ORDER,
    SEVERITY_ORDER,
    BreakingChange,
    ChangeCategory,
    ChangelogDiff,
    ChangelogSource,
    ChangeSeverity,
    DependencyType,
    Ecosystem,
    EstimatedEffort,
    EvidenceStatus,
    FileContext,
    PackageAnalysis,
    PackageMetadata,
    PackageUpdate,
    RiskAssessment,
    RiskLevel,
    TestingScope,
    UsageAnalysis,
    UsageLocation,
    UsageType,
)

__all__ = [
    # Enums
    "ChangeCategory",
    "ChangeSeverity",
    "ChangelogSource",
    "DependencyType",
    "Ecosystem",
    "EstimatedEffort",
    "EvidenceStatus",
    "FileContext",
    "RiskLevel",
    "TestingScope",
    "UsageType",
    # Models
    "BreakingChange",
    "ChangelogDiff",
    "PackageAnalysis",
    "PackageMetadata",
    "PackageUpdate",
    "RiskAssessment",
    "UsageAnalysis",
    "UsageLocation",
    # Orderings
    "RISK_LEVEL_ORDER",
    "SEVERITY_ORDER",
]
