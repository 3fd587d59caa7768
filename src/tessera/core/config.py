# src/tessera/core/config.py
"""
Configuration schema and loading for Tessera.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON lines instead of console output",
    )


class MacroSettings(BaseModel):
    """Macro expansion configuration.

    max_workers > 1 runs independent macro instantiations on a thread pool.
    Results are always joined and aggregated in instantiation order, so row
    ordering of aggregated outputs does not depend on this setting.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    default_num_folds: int = Field(
        default=2,
        ge=1,
        description="Fold count used by cross-validation when the node does not set num_folds",
    )
    max_workers: int = Field(
        default=1,
        ge=1,
        description="Maximum concurrent macro instantiations (1 = sequential)",
    )


class TesseraSettings(BaseModel):
    """Top-level Tessera configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    seed: int = Field(
        default=42,
        description="Experiment seed; every fold split and generated number derives from it",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )
    macro: MacroSettings = Field(
        default_factory=MacroSettings,
        description="Macro expansion configuration",
    )


def load_settings(config_path: Path) -> TesseraSettings:
    """Load settings from a YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (TESSERA_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: TESSERA_MACRO__MAX_WORKERS for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated TesseraSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="TESSERA",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    return TesseraSettings(**raw_config)


def _lower_keys(value: object) -> object:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value
