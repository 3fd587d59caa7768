# src/tessera/plugins/__init__.py
"""Entry-point system: descriptors, options, context and the pluggy registry.

- Descriptors: EntryPointSpec built with the ``entry_point`` decorator
- Options: EntryPointConfig, pydantic models for literal inputs
- Context: EntryPointContext passed to every invocation
- Registry: EntryPointRegistry, populated through pluggy hooks
"""

from tessera.plugins.base import EntryPointSpec, InputParam, OutputParam, entry_point, optional, produces, required
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext
from tessera.plugins.hookspecs import hookimpl, hookspec
from tessera.plugins.manager import EntryPointRegistry, create_entry_point_plugin

__all__ = [
    "EntryPointConfig",
    "EntryPointContext",
    "EntryPointRegistry",
    "EntryPointSpec",
    "InputParam",
    "OutputParam",
    "create_entry_point_plugin",
    "entry_point",
    "hookimpl",
    "hookspec",
    "optional",
    "produces",
    "required",
]
