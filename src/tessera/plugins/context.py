# src/tessera/plugins/context.py
"""Entry-point invocation context.

The EntryPointContext carries everything an entry point might need while
it runs: the environment (seed, settings, registry), its own node id and
kind, and the scope path used to derive its random streams. Macros use it
to compile and execute their instantiations.

Example:
    def invoke(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
        rng = ctx.rng()
        ctx.logger.debug("sampling", rows=inputs["count"])
        ...
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from tessera.core.logging import get_logger

if TYPE_CHECKING:
    from tessera.core.config import TesseraSettings
    from tessera.core.environment import ExperimentEnvironment
    from tessera.plugins.manager import EntryPointRegistry


@dataclass(frozen=True, slots=True)
class EntryPointContext:
    """Context passed to every entry-point invocation.

    ``scope`` is the node-id path from the outermost graph down to this
    node, e.g. ("cv", "cv/fold_1/train") for a node inside a macro
    instantiation.
    """

    env: ExperimentEnvironment
    registry: EntryPointRegistry
    node_id: str
    kind: str
    scope: tuple[str, ...]

    @property
    def settings(self) -> TesseraSettings:
        return self.env.settings

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(f"tessera.entry_points.{self.kind}").bind(node_id=self.node_id, kind=self.kind)

    def rng(self, *extra: str | int) -> random.Random:
        """Random generator for this node (optionally sub-scoped by ``extra``)."""
        return self.env.rng(*self.scope, *extra)
