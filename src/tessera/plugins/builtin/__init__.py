# src/tessera/plugins/builtin/__init__.py
"""Built-in entry points: data loading, transforms, trainers, evaluators.

The macros (cross-validation, one-versus-all, train/test) live in
``tessera.engine.macros`` and are registered alongside these.
"""

from tessera.plugins.base import EntryPointSpec
from tessera.plugins.hookspecs import hookimpl


class BuiltinEntryPoints:
    """Hook implementer registering every built-in entry point."""

    @hookimpl
    def tessera_get_entry_points(self) -> list[EntryPointSpec]:
        # Imported here: the macro modules depend on this package's helpers.
        from tessera.engine.macros import ENTRY_POINTS as MACRO_ENTRY_POINTS
        from tessera.plugins.builtin import data, evaluators, scoring, trainers, transforms

        return [
            *data.ENTRY_POINTS,
            *transforms.ENTRY_POINTS,
            *scoring.ENTRY_POINTS,
            *trainers.ENTRY_POINTS,
            *evaluators.ENTRY_POINTS,
            *MACRO_ENTRY_POINTS,
        ]


__all__ = ["BuiltinEntryPoints"]
