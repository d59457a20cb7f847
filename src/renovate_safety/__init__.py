"""renovate-safety - Risk analysis for dependency update pull requests."""

__version__ = "0.1.0"
