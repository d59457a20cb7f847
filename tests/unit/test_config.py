"""Tests for configuration module."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from renovate_safety.config import (
    AnalysisConfig,
    RenovateSafetyConfig,
    ScannerConfig,
    find_config_file,
    generate_example_config,
    load_config,
)
from renovate_safety.errors import ConfigurationError

ENV_VARS = (
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "RENOVATE_SAFETY_CACHE_DIR",
    "RENOVATE_SAFETY_CONCURRENCY",
    "RENOVATE_SAFETY_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestAnalysisConfig:
    """Tests for AnalysisConfig."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = AnalysisConfig()
        assert config.concurrency == 4
        assert config.use_cache is True
        assert config.cache_ttl_hours == 168

    def test_concurrency_bounds(self) -> None:
        """Test that concurrency must stay between 1 and 32."""
        with pytest.raises(ValidationError):
            AnalysisConfig(concurrency=0)
        with pytest.raises(ValidationError):
            AnalysisConfig(concurrency=33)

    def test_cache_dir_expanded(self) -> None:
        """Test that ~ is expanded in the cache directory."""
        config = AnalysisConfig(cache_dir=Path("~/cache"))
        assert "~" not in str(config.cache_dir)


class TestScannerConfig:
    """Tests for ScannerConfig."""

    def test_default_excludes(self) -> None:
        """Test vendored directories are excluded by default."""
        config = ScannerConfig()
        assert "node_modules" in config.exclude_patterns
        assert ".venv" in config.exclude_patterns


class TestFindConfigFile:
    """Tests for find_config_file."""

    def test_walks_up(self, temp_dir: Path) -> None:
        """Test the nearest ancestor config is found."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("version: 1\n")
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == config_file.resolve()

    def test_yaml_extension(self, temp_dir: Path) -> None:
        """Test the .yaml spelling is accepted."""
        config_file = temp_dir / ".renovate-safety.yaml"
        config_file.write_text("version: 1\n")
        assert find_config_file(temp_dir) == config_file.resolve()


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_from_file(self, temp_dir: Path) -> None:
        """Test values from a YAML file."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("analysis:\n  concurrency: 8\n  use_cache: false\nscanner:\n  max_file_size: 2048\n")
        config = load_config(config_file)
        assert config.analysis.concurrency == 8
        assert config.analysis.use_cache is False
        assert config.scanner.max_file_size == 2048

    def test_missing_file_gives_defaults(self, temp_dir: Path) -> None:
        """Test a nonexistent path falls back to defaults."""
        config = load_config(temp_dir / "missing.yml")
        assert config == RenovateSafetyConfig()

    def test_env_overrides(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables take precedence over the file."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("analysis:\n  concurrency: 8\n")
        monkeypatch.setenv("GH_TOKEN", "gh-token")
        monkeypatch.setenv("RENOVATE_SAFETY_CONCURRENCY", "2")
        monkeypatch.setenv("RENOVATE_SAFETY_CACHE_DIR", str(temp_dir / "cache"))

        config = load_config(config_file)
        assert config.github.token == "gh-token"
        assert config.analysis.concurrency == 2
        assert config.analysis.cache_dir == temp_dir / "cache"

    def test_github_token_preferred(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test GITHUB_TOKEN wins over GH_TOKEN."""
        monkeypatch.setenv("GITHUB_TOKEN", "primary")
        monkeypatch.setenv("GH_TOKEN", "secondary")
        assert load_config(temp_dir / "missing.yml").github.token == "primary"

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        """Test unparseable YAML raises ConfigurationError."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("analysis: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_config(config_file)

    def test_invalid_values(self, temp_dir: Path) -> None:
        """Test out-of-range values raise ConfigurationError with a hint."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("analysis:\n  concurrency: 100\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)
        assert "renovate-safety init" in exc_info.value.hint

    def test_non_mapping(self, temp_dir: Path) -> None:
        """Test a YAML list is rejected."""
        config_file = temp_dir / ".renovate-safety.yml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_config(config_file)


class TestGenerateExampleConfig:
    """Tests for generate_example_config."""

    def test_example_is_valid(self) -> None:
        """Test the example parses into a valid configuration."""
        data = yaml.safe_load(generate_example_config())
        config = RenovateSafetyConfig(**data)
        assert config.version == 1
        assert config.analysis.timeout == 30
