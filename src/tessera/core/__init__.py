# src/tessera/core/__init__.py
"""Core infrastructure: canonical hashing, configuration, data model, DAG, logging."""

from tessera.core.canonical import CANONICAL_VERSION, canonical_json, derive_seed, stable_hash
from tessera.core.config import LoggingSettings, MacroSettings, TesseraSettings, load_settings
from tessera.core.logging import configure_logging, get_logger

__all__ = [
    "CANONICAL_VERSION",
    "LoggingSettings",
    "MacroSettings",
    "TesseraSettings",
    "canonical_json",
    "configure_logging",
    "derive_seed",
    "get_logger",
    "load_settings",
    "stable_hash",
]
