"""Configuration management for dqgate using Pydantic models."""

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

CONFIG_FILENAME = ".dqgate.json"


class OutputFormat(str, Enum):
    """Report output formats."""
    TABLE = "table"
    JSON = "json"
    MARKDOWN = "markdown"


class LogLevel(str, Enum):
    """Logging levels."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


class EngineConfig(BaseModel):
    """Validation engine configuration section."""
    parallel: bool = False
    max_workers: int = Field(alias="maxWorkers", default=5)
    as_of: datetime | None = Field(alias="asOf", default=None)

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v):
        if v < 1:
            raise ValueError("max_workers must be >= 1")
        return v

    @field_validator("as_of")
    @classmethod
    def validate_as_of(cls, v):
        """Naive reference times are taken as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class JurisdictionConfig(BaseModel):
    """Jurisdiction rule configuration section."""
    enabled: bool = True
    markets: list[str] | None = None

    @field_validator("markets")
    @classmethod
    def validate_markets(cls, v):
        """Restrict the allow-list to markets that have registered rules."""
        if v is None:
            return v
        from .validation.jurisdiction import Market

        normalized = []
        for name in v:
            market = Market.from_code(name)
            if market is None:
                valid = [market.value for market in Market]
                raise ValueError(f"unknown market {name!r}, expected one of {valid}")
            normalized.append(market.value)
        return normalized

    model_config = ConfigDict(extra="forbid")


class OutputConfig(BaseModel):
    """Report output configuration section."""
    format: OutputFormat = OutputFormat.TABLE
    colour: bool = True

    model_config = ConfigDict(use_enum_values=True, extra="forbid")


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: LogLevel = LogLevel.WARN

    model_config = ConfigDict(use_enum_values=True, extra="forbid")


class DqgateConfig(BaseModel):
    """Complete dqgate configuration model.

    Tolerance epsilons are fixed domain constants and deliberately have no
    configuration entry.
    """
    engine: EngineConfig = Field(default_factory=EngineConfig)
    jurisdiction: JurisdictionConfig = Field(default_factory=JurisdictionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")


def load_config(config_path: str | Path | None = None) -> DqgateConfig:
    """Load configuration from file with fallback to defaults.

    Args:
        config_path: Optional path to configuration file. If None, searches
                    current directory and parents for .dqgate.json

    Returns:
        DqgateConfig: Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file specified but not found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = find_config_file()
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

    if config_path is None:
        return create_default_config()

    try:
        with open(config_path, encoding="utf-8") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {config_path}: {e}") from e
    if not isinstance(config_data, dict):
        raise ValueError(f"Config file {config_path} must contain a JSON object")

    try:
        return DqgateConfig(**config_data)
    except ValidationError as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find .dqgate.json configuration file by searching up directory tree.

    Args:
        start_dir: Directory to start search from (default: current directory)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = Path(start_dir).resolve()

    while True:
        config_file = current / CONFIG_FILENAME
        if config_file.exists():
            return config_file

        parent = current.parent
        if parent == current:  # Reached root directory
            break
        current = parent

    return None


def create_default_config() -> DqgateConfig:
    """Create default configuration for zero-config operation."""
    return DqgateConfig()
