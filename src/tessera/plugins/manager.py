# src/tessera/plugins/manager.py
"""Entry-point registry.

Uses pluggy for hook-based registration. Node kinds are resolved to
value-typed descriptors (EntryPointSpec); there is no class-based
dispatch.
"""

import difflib
from collections.abc import Iterable, Iterator
from typing import Any

import pluggy

from tessera.contracts.errors import UnknownEntryPointError
from tessera.plugins.base import EntryPointSpec
from tessera.plugins.hookspecs import PROJECT_NAME, TesseraEntryPointSpec, hookimpl


def create_entry_point_plugin(specs: Iterable[EntryPointSpec]) -> object:
    """Create a pluggy hookimpl object registering ``specs``.

    Dynamically generates an object whose ``tessera_get_entry_points``
    hook returns the given descriptors.
    """
    registered = list(specs)

    class DynamicEntryPoints:
        """Dynamically generated hook implementer."""

        @hookimpl
        def tessera_get_entry_points(self) -> list[EntryPointSpec]:
            return registered

    return DynamicEntryPoints()


class EntryPointRegistry:
    """Maps node-kind names to entry-point descriptors.

    Usage:
        registry = EntryPointRegistry.with_builtins()
        spec = registry.resolve("transforms.min_max_normalizer")

        registry.register(MyPlugin())  # adds more kinds
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(TesseraEntryPointSpec)
        self._entry_points: dict[str, EntryPointSpec] = {}

    @classmethod
    def with_builtins(cls) -> "EntryPointRegistry":
        registry = cls()
        registry.register_builtin_entry_points()
        return registry

    def register_builtin_entry_points(self) -> None:
        """Register all built-in entry points (data, transforms, trainers, evaluators, macros)."""
        from tessera.plugins.builtin import BuiltinEntryPoints

        self.register(BuiltinEntryPoints())

    def register(self, plugin: Any) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin instance implementing hook methods

        Raises:
            ValueError: If the plugin provides a kind that is already registered
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_caches(self) -> None:
        """Refresh the kind table from hooks.

        Raises:
            ValueError: If an entry point with the same kind is already registered
        """
        entry_points: dict[str, EntryPointSpec] = {}
        for specs in self._pm.hook.tessera_get_entry_points():
            for spec in specs:
                if spec.kind in entry_points:
                    raise ValueError(f"Duplicate entry point kind: '{spec.kind}'")
                entry_points[spec.kind] = spec
        self._entry_points = dict(sorted(entry_points.items()))

    # === Lookup ===

    def resolve(self, kind: str) -> EntryPointSpec:
        """Get the descriptor for ``kind``.

        Raises:
            UnknownEntryPointError: If ``kind`` is not registered (with close matches)
        """
        try:
            return self._entry_points[kind]
        except KeyError:
            suggestions = difflib.get_close_matches(kind, list(self._entry_points), n=3, cutoff=0.6)
            raise UnknownEntryPointError(kind, suggestions) from None

    def kinds(self) -> list[str]:
        """Registered kinds, sorted."""
        return list(self._entry_points)

    def get_entry_points(self) -> list[EntryPointSpec]:
        return list(self._entry_points.values())

    def __contains__(self, kind: object) -> bool:
        return kind in self._entry_points

    def __iter__(self) -> Iterator[EntryPointSpec]:
        return iter(self._entry_points.values())

    def __len__(self) -> int:
        return len(self._entry_points)
