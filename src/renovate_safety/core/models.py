"""Core data models for renovate-safety."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Ecosystem(str, Enum):
    """Supported package ecosystems."""

    NPM = "npm"
    PYPI = "pypi"


class ChangelogSource(str, Enum):
    """Where a piece of changelog evidence came from."""

    REGISTRY_DIFF = "registry-diff"
    RELEASE_NOTES = "release-notes"
    REGISTRY_DESCRIPTION = "registry-description"
    COMMIT_LOG = "commit-log"
    COMBINED = "combined"


class ChangeSeverity(str, Enum):
    """Severity of a detected breaking change."""

    BREAKING = "breaking"
    REMOVAL = "removal"
    WARNING = "warning"


class ChangeCategory(str, Enum):
    """What kind of change a breaking change entry describes."""

    RUNTIME_REQUIREMENT = "runtime-requirement"
    API_CHANGE = "api-change"
    REMOVAL = "removal"
    DEPRECATION = "deprecation"
    DOCUMENTED_CHANGE = "documented-change"


class UsageType(str, Enum):
    """Syntactic kind of a package reference."""

    IMPORT = "import"
    REQUIRE = "require"
    FUNCTION_CALL = "function-call"
    PROPERTY_ACCESS = "property-access"
    TYPE_REFERENCE = "type-reference"
    CONFIG = "config"


class FileContext(str, Enum):
    """Role of a file within the analyzed project."""

    PRODUCTION = "production"
    TEST = "test"
    CONFIG = "config"
    BUILD = "build"


class DependencyType(str, Enum):
    """How the analyzed project declares a package."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"
    PEER = "peer"
    OPTIONAL = "optional"
    TRANSITIVE = "transitive"


class RiskLevel(str, Enum):
    """Final risk level of a dependency update."""

    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class EstimatedEffort(str, Enum):
    """Rough amount of work needed to adopt an update."""

    NONE = "none"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    UNKNOWN = "unknown"


class TestingScope(str, Enum):
    """Recommended amount of testing before merging an update."""

    NONE = "none"
    UNIT = "unit tests"
    INTEGRATION = "integration tests"
    FULL_REGRESSION = "full regression"


class EvidenceStatus(str, Enum):
    """Outcome of the changelog acquisition chain."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


# Ordering helpers shared by the extractor and the risk aggregator
SEVERITY_ORDER: dict[ChangeSeverity, int] = {
    ChangeSeverity.BREAKING: 0,
    ChangeSeverity.REMOVAL: 1,
    ChangeSeverity.WARNING: 2,
}

RISK_LEVEL_ORDER: dict[RiskLevel, int] = {
    RiskLevel.SAFE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


class PackageUpdate(BaseModel):
    """A single dependency version bump under analysis."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Package name")
    from_version: str = Field(..., min_length=1, description="Currently installed version")
    to_version: str = Field(..., min_length=1, description="Proposed version")

    def __str__(self) -> str:
        return f"{self.name}@{self.from_version} -> {self.to_version}"


class PackageMetadata(BaseModel):
    """Registry metadata for one published version of a package."""

    name: str
    version: str
    description: str | None = None
    homepage: str | None = None
    repository: str | None = None
    license: str | None = None
    published_at: datetime | None = None
    deprecated: str | None = None
    requires_runtime: str | None = Field(
        default=None,
        description="Minimum runtime requirement (engines.node or requires_python)",
    )
    entry_points: list[str] = Field(
        default_factory=list,
        description="Public entry files declared by the manifest (main, module, types, exports)",
    )


class ChangelogDiff(BaseModel):
    """Changelog evidence covering a version range."""

    content: str
    source: ChangelogSource
    from_version: str
    to_version: str


class BreakingChange(BaseModel):
    """A breaking change extracted from changelog text or a code diff."""

    text: str
    severity: ChangeSeverity
    source: str = Field(..., description="Evidence the entry came from")
    category: ChangeCategory = ChangeCategory.DOCUMENTED_CHANGE
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class UsageLocation(BaseModel):
    """One syntactic occurrence of the package in the analyzed project."""

    file: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=0)
    type: UsageType
    code: str
    context: FileContext


class UsageAnalysis(BaseModel):
    """Aggregated usage of a package across the analyzed project."""

    locations: list[UsageLocation] = Field(default_factory=list)
    total_usage_count: int = 0
    production_usage_count: int = 0
    test_usage_count: int = 0
    config_usage_count: int = 0
    critical_paths: list[str] = Field(default_factory=list)
    has_dynamic_imports: bool = False


class RiskAssessment(BaseModel):
    """Leveled risk assessment for one update."""

    level: RiskLevel
    factors: list[str] = Field(default_factory=list)
    estimated_effort: EstimatedEffort = EstimatedEffort.UNKNOWN
    testing_scope: TestingScope = TestingScope.FULL_REGRESSION
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    score: float = Field(default=0.0, ge=0.0, le=100.0)


class PackageAnalysis(BaseModel):
    """Complete analysis result for one package update."""

    update: PackageUpdate
    ecosystem: Ecosystem | None = None
    metadata: PackageMetadata | None = None
    changelog: ChangelogDiff | None = None
    evidence_status: EvidenceStatus = EvidenceStatus.NOT_FOUND
    evidence_errors: list[str] = Field(default_factory=list)
    breaking_changes: list[BreakingChange] = Field(default_factory=list)
    usage: UsageAnalysis | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    risk: RiskAssessment | None = None
    error: str | None = Field(
        default=None,
        description="Reason the analysis was rejected, if it was",
    )
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        """Whether the analysis produced a risk assessment."""
        return self.error is None and self.risk is not None
