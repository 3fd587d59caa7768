# src/tessera/core/environment.py
"""Explicit execution context.

The environment carries the experiment seed, settings and the entry-point
registry. It is passed into the compiler, executor and macros; nothing in
Tessera reads a global seed.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from tessera.core.canonical import derive_seed
from tessera.core.config import TesseraSettings

if TYPE_CHECKING:
    from tessera.core.dag.graph import Graph
    from tessera.engine.experiment import Experiment
    from tessera.plugins.manager import EntryPointRegistry


class ExperimentEnvironment:
    """Seed, settings and registry shared by one experiment.

    Example:
        env = ExperimentEnvironment(seed=7)
        experiment = env.create_experiment()
    """

    def __init__(
        self,
        seed: int | None = None,
        *,
        settings: TesseraSettings | None = None,
        registry: EntryPointRegistry | None = None,
    ) -> None:
        self._settings = settings if settings is not None else TesseraSettings()
        self._seed = seed if seed is not None else self._settings.seed
        if registry is None:
            from tessera.plugins.manager import EntryPointRegistry

            registry = EntryPointRegistry.with_builtins()
        self._registry = registry

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def settings(self) -> TesseraSettings:
        return self._settings

    @property
    def registry(self) -> EntryPointRegistry:
        return self._registry

    def rng(self, *scope: str | int) -> random.Random:
        """Fresh generator seeded from (seed, scope).

        Scopes are node-id paths, so every node and fold draws from its
        own stream regardless of execution order.
        """
        return random.Random(derive_seed(self._seed, scope))

    def create_graph(self) -> Graph:
        from tessera.core.dag.graph import Graph

        return Graph(self._registry)

    def create_experiment(self) -> Experiment:
        from tessera.engine.experiment import Experiment

        return Experiment(self)
