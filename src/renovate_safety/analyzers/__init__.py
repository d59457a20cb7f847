"""Per-ecosystem analyzers and the registry that selects between them."""

from renovate_safety.analyzers.base import AnalyzerRegistry, EcosystemAnalyzer
from renovate_safety.analyzers.npm import NpmAnalyzer
from renovate_safety.analyzers.pypi import PyPIAnalyzer

__all__ = [
    "AnalyzerRegistry",
    "EcosystemAnalyzer",
    "NpmAnalyzer",
    "PyPIAnalyzer",
]
