"""gitreload Configuration System.

Layered YAML configuration with Pydantic validation.

Config Layer Priority (highest to lowest):
1. Runtime overrides (CLI flags)
2. Settings file (e.g. /etc/gitreload/settings.yaml)
3. Environment variables (GITRELOAD_ prefix, ``__`` nesting)
4. Defaults (defined in Pydantic models)

Option names accept both the hyphenated spelling used in agent
configuration files (``repository-url``) and the Python spelling
(``repository_url``).

Usage:
    from gitreload.core.config import create_settings

    settings = create_settings(config_path=Path("settings.yaml"))
    print(settings.watch.poll_interval_seconds)  # 60 (default)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gitreload.core.exceptions import ConfigurationError


DEFAULT_POLL_INTERVAL = 60
DEFAULT_DOCUMENT_SUFFIX = ".yaml"
WATCH_SECTION = "watch"

SettingsT = TypeVar("SettingsT", bound=BaseSettings)


def normalize_option_names(options: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite ``some-option`` keys as ``some_option``.

    When both spellings are present the one appearing later wins.
    """
    return {
        key.replace("-", "_") if isinstance(key, str) else key: value
        for key, value in options.items()
    }


def _normalize_layer(layer: Dict[str, Any]) -> Dict[str, Any]:
    section = layer.get(WATCH_SECTION)
    if not isinstance(section, dict):
        return layer
    return {**layer, WATCH_SECTION: normalize_option_names(section)}


# =============================================================================
# Sub-configuration Models (nested sections)
# =============================================================================


class StagingLocation(BaseModel):
    """Where staging state lives on disk.

    Enough to inspect pointers and candidates without a reachable
    repository; ``WatchConfig`` adds the options needed to poll one.
    """

    model_config = ConfigDict(extra="ignore")

    repository_url: Optional[str] = None
    ref: Optional[str] = None
    file_path: Optional[str] = None
    state_directory: str = "~/.gitreload"

    @model_validator(mode="before")
    @classmethod
    def accept_hyphenated_names(cls, data: Any) -> Any:
        """Map agent-style option names onto field names."""
        if isinstance(data, dict):
            return normalize_option_names(data)
        return data

    @property
    def state_path(self) -> Path:
        """Absolute base directory for clone, candidates and pointers."""
        return Path(self.state_directory).expanduser().absolute()

    @property
    def repo_path(self) -> Path:
        """Directory of the synchronized working copy."""
        return self.state_path / "repo"

    @property
    def configs_path(self) -> Path:
        """Directory of staged candidates, header and pointer files."""
        return self.state_path / "configs"

    @property
    def document_suffix(self) -> str:
        """Extension used for candidates and the header."""
        if not self.file_path:
            return DEFAULT_DOCUMENT_SUFFIX
        return Path(self.file_path).suffix or DEFAULT_DOCUMENT_SUFFIX


class WatchConfig(StagingLocation):
    """Repository tracking and staging configuration."""

    repository_url: str
    ref: str = "main"
    file_path: str
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL
    git_timeout_seconds: PositiveInt = 60

    @field_validator("repository_url", "file_path")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Reject blank required options."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        """Non-positive intervals fall back to the default."""
        return v if v > 0 else DEFAULT_POLL_INTERVAL


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate renderer name."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v.lower()


class Settings(BaseSettings):
    """Main settings class.

    Loads configuration from:
    1. Keyword arguments (settings file merged with overrides)
    2. Environment variables (GITRELOAD_ prefix)
    3. Defaults defined in Pydantic models
    """

    model_config = SettingsConfigDict(
        env_prefix="GITRELOAD_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    watch: WatchConfig
    logging_config: LoggingConfig = Field(
        default_factory=LoggingConfig, alias="logging"
    )

    @property
    def logging(self) -> LoggingConfig:
        """Alias for logging_config to match YAML key."""
        return self.logging_config


class StatusSettings(BaseSettings):
    """Settings for offline inspection of a state directory.

    Same sources as ``Settings``, but repository options are optional.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITRELOAD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    watch: StagingLocation = Field(default_factory=StagingLocation)


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as dictionary.

    Raises:
        ConfigurationError: If file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Configuration file not found: {path}",
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Invalid YAML in {path}: {e}",
        )

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(
            config_path=str(path),
            message=f"Top level of {path} must be a mapping",
        )
    return content


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge multiple configuration dictionaries.

    Later configs override earlier ones.

    Args:
        *configs: Configuration dictionaries to merge.

    Returns:
        Merged configuration dictionary.
    """
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge_configs(result[key], value)
            else:
                result[key] = value

    return result


def create_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    settings_cls: Type[SettingsT] = Settings,  # type: ignore[assignment]
) -> SettingsT:
    """Create a Settings instance with layered configuration.

    Args:
        config_path: Optional path to the settings YAML file.
        overrides: Optional runtime overrides dictionary.
        settings_cls: Settings model to validate against.

    Returns:
        Configured Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    file_config: Dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path).expanduser()

        # Load .env file for credentials embedded in repository URLs
        env_path = config_path.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        file_config = load_yaml_file(config_path)

    # Both spellings must collapse before merging so overrides replace file values
    merged = merge_configs(_normalize_layer(file_config), _normalize_layer(overrides or {}))

    try:
        return settings_cls(**merged)
    except Exception as e:
        raise ConfigurationError(
            config_path=str(config_path or "<environment>"),
            message=f"Configuration validation failed: {e}",
        ) from e
