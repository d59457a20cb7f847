"""Configuration management for renovate-safety."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from renovate_safety.errors import ConfigurationError

CONFIG_FILENAMES = (".renovate-safety.yml", ".renovate-safety.yaml")

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "renovate-safety"


class AnalysisConfig(BaseModel):
    """Configuration for the risk-analysis engine."""

    concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum number of concurrent evidence-gathering branches",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Per-request network timeout in seconds",
    )
    use_cache: bool = Field(
        default=True,
        description="Read and write the on-disk changelog cache",
    )
    cache_dir: Path = Field(
        default=DEFAULT_CACHE_DIR,
        description="Directory holding one JSON document per cached changelog",
    )
    cache_ttl_hours: int | None = Field(
        default=24 * 7,
        ge=1,
        description="Age after which cached changelogs are refetched (None keeps them forever)",
    )
    token_limit: int = Field(
        default=8000,
        ge=100,
        description="Approximate token budget for breaking-change text handed to summarizers",
    )

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path) -> Path:
        """Expand ``~`` in the cache directory."""
        return v.expanduser()


class ScannerConfig(BaseModel):
    """Configuration for the usage scanner."""

    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            ".git",
            "__pycache__",
            ".venv",
            "venv",
            ".tox",
            "coverage",
        ],
        description="Directory names and glob patterns to skip while scanning",
    )
    max_file_size: int = Field(
        default=1_000_000,
        ge=1024,
        description="Files larger than this many bytes are not scanned",
    )


class GitHubConfig(BaseModel):
    """Configuration for GitHub access."""

    api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API URL",
    )
    token: str | None = Field(
        default=None,
        description="GitHub personal access token (prefer GITHUB_TOKEN env var)",
    )


class RenovateSafetyConfig(BaseModel):
    """Complete renovate-safety configuration."""

    version: int = Field(default=1, description="Configuration file version")
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest renovate-safety configuration file.

    Searches from start_path up to the root directory.

    Args:
        start_path: Starting directory for search (defaults to cwd).

    Returns:
        Path to config file if found, None otherwise.
    """
    current = (start_path or Path.cwd()).resolve()

    while True:
        for filename in CONFIG_FILENAMES:
            candidate = current / filename
            if candidate.is_file():
                return candidate
        if current == current.parent:
            return None
        current = current.parent


def _apply_env_overrides(config_data: dict[str, Any]) -> None:
    github_token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
    if github_token:
        config_data.setdefault("github", {})["token"] = github_token

    analysis_overrides = {
        "cache_dir": os.environ.get("RENOVATE_SAFETY_CACHE_DIR"),
        "concurrency": os.environ.get("RENOVATE_SAFETY_CONCURRENCY"),
        "timeout": os.environ.get("RENOVATE_SAFETY_TIMEOUT"),
    }
    for key, value in analysis_overrides.items():
        if value:
            config_data.setdefault("analysis", {})[key] = value


def load_config(config_path: Path | None = None) -> RenovateSafetyConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    Args:
        config_path: Path to config file (searches if not provided).

    Returns:
        Loaded configuration.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path and config_path.exists():
        try:
            with open(config_path) as f:
                file_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse {config_path}: {e}",
                "Check the file is valid YAML.",
            ) from e
        if file_data:
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"{config_path} must contain a mapping")
            config_data = file_data

    _apply_env_overrides(config_data)

    try:
        return RenovateSafetyConfig(**config_data)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            "Run 'renovate-safety init' to generate an example configuration.",
        ) from e


def generate_example_config() -> str:
    """Generate an example configuration file.

    Returns:
        YAML string of example configuration.
    """
    return """# renovate-safety configuration

version: 1

analysis:
  # Maximum number of concurrent evidence-gathering branches
  concurrency: 4
  # Per-request network timeout in seconds
  timeout: 30
  # Cache fetched changelogs on disk
  use_cache: true
  cache_dir: ~/.cache/renovate-safety
  # Refetch cached changelogs after this many hours
  cache_ttl_hours: 168

scanner:
  # Directory names and glob patterns to skip while scanning
  exclude_patterns:
    - node_modules
    - .git
    - __pycache__
    - .venv
  # Files larger than this many bytes are not scanned
  max_file_size: 1000000

# GitHub configuration (token via GITHUB_TOKEN env var)
github:
  api_url: https://api.github.com
"""
