"""Risk aggregation: breaking changes + usage + evidence trust -> RiskAssessment."""

from renovate_safety.risk.aggregator import (
    DEFAULT_WEIGHTS,
    EFFORT_BY_LEVEL,
    TESTING_BY_LEVEL,
    Evidence,
    RiskWeights,
    assess_risk,
    is_type_only_package,
    score_to_level,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "EFFORT_BY_LEVEL",
    "TESTING_BY_LEVEL",
    "Evidence",
    "RiskWeights",
    "assess_risk",
    "is_type_only_package",
    "score_to_level",
]
