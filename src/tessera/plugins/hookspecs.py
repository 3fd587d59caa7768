# src/tessera/plugins/hookspecs.py
"""pluggy hook specifications for Tessera entry points.

Plugins implement these hooks to register entry points with the registry.

Usage (implementing a plugin):
    from tessera.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def tessera_get_entry_points(self):
            return [my_entry_point]

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks plugin implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from tessera.plugins.base import EntryPointSpec

# Project name for pluggy
PROJECT_NAME = "tessera"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class TesseraEntryPointSpec:
    """Hook specifications for entry-point plugins."""

    @hookspec
    def tessera_get_entry_points(self) -> list["EntryPointSpec"]:  # type: ignore[empty-body]
        """Return entry-point descriptors.

        Returns:
            List of EntryPointSpec records
        """
