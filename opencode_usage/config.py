"""Configuration management for OpenCode Usage."""

import os
import toml
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .utils.error_handling import ConfigurationError


def opencode_data_path(path: Optional[str] = None) -> str:
    base = os.getenv("XDG_DATA_HOME") or "~/.local/share"
    parts = [base, "opencode"]
    if path:
        parts.append(path)
    return os.path.join(*parts)


class PathsConfig(BaseModel):
    """Locations of the OpenCode data stores.

    ``db_path`` and ``storage_dir`` default to entries under ``data_dir``
    when they are not set explicitly.
    """

    data_dir: str = Field(default=opencode_data_path())
    db_path: Optional[str] = Field(
        default=None, description="SQLite store (opencode.db); takes precedence"
    )
    storage_dir: Optional[str] = Field(
        default=None, description="Legacy JSON storage tree"
    )

    @field_validator("data_dir", "db_path", "storage_dir")
    @classmethod
    def expand_path(cls, v):
        """Expand user paths and environment variables."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    @model_validator(mode="after")
    def fill_defaults(self) -> "PathsConfig":
        if self.db_path is None:
            self.db_path = os.path.join(self.data_dir, "opencode.db")
        if self.storage_dir is None:
            self.storage_dir = os.path.join(self.data_dir, "storage")
        return self


class AnalyticsConfig(BaseModel):
    """Default time windows (in days) for each report."""

    session_days: int = Field(default=7, ge=1)
    daily_days: int = Field(default=7, ge=1)
    monthly_days: int = Field(default=30, ge=1)
    summary_days: int = Field(default=30, ge=1)
    heatmap_days: int = Field(default=365, ge=1)
    heatmap_metric: str = Field(
        default="tokens", pattern="^(tokens|cost|messages)$"
    )


class UIConfig(BaseModel):
    """Configuration for terminal output."""

    colors: bool = Field(default=True)
    top_sessions: int = Field(
        default=10, ge=1, le=1000, description="Sessions listed by 'analyze -s'"
    )


class Config(BaseModel):
    """Main configuration class."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    ui: UIConfig = Field(default_factory=UIConfig)


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, searches standard locations.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Config] = None

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations."""
        search_paths = [
            os.getenv("OPENCODE_USAGE_CONFIG"),
            os.path.expanduser("~/.config/opencode-usage/config.toml"),
            "config.toml",
            "opencode_usage.toml",
        ]

        for path in search_paths:
            if path and os.path.exists(path):
                return path

        return None

    @property
    def config(self) -> Config:
        """Get configuration, loading if necessary."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path or not os.path.exists(self.config_path):
            return Config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = toml.load(f)
            return Config(**config_data)
        except (toml.TomlDecodeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration file {self.config_path}: {e}"
            ) from e

    def reload(self):
        """Drop the cached configuration so the next access re-reads the file."""
        self._config = None


# Global configuration manager instance
config_manager = ConfigManager()
