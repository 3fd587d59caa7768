# src/tessera/engine/experiment.py
"""Experiment - caller-facing facade over build, compile, bind, run, read."""

from __future__ import annotations

from typing import Any

import structlog

from tessera.contracts.enums import RunStatus, ValueKind
from tessera.contracts.errors import ExecutionStateError, GraphBuildError, TypeMismatchError
from tessera.core.dag.compiler import CompiledGraph, compile_graph
from tessera.core.dag.graph import Graph
from tessera.core.dag.models import NodeHandle, Variable
from tessera.core.environment import ExperimentEnvironment
from tessera.core.values import check_value, describe_value
from tessera.engine.executor import Executor, ValueTable

slog = structlog.get_logger(__name__)


class Experiment:
    """One graph, its bound inputs, and the values of its last run.

    Lifecycle: BUILDING -> COMPILED -> RUNNING -> COMPLETED | FAILED.
    Adding nodes after compile returns the experiment to BUILDING; inputs
    may be bound before or after compile but not once a run has started.

    Example:
        experiment = env.create_experiment()
        data = experiment.declare_input(ValueKind.ROW_STREAM, name="data")
        train = experiment.add("trainers.logistic_regression_binary_classifier", training_data=data)
        experiment.compile()
        experiment.set_input(data, stream)
        experiment.run()
        model = experiment.get_output(train["predictor_model"])
    """

    def __init__(self, env: ExperimentEnvironment, graph: Graph | None = None) -> None:
        self._env = env
        self._graph = graph if graph is not None else env.create_graph()
        self._compiled: CompiledGraph | None = None
        self._inputs: dict[Variable, Any] = {}
        self._values: ValueTable | None = None
        self._status = RunStatus.BUILDING

    @property
    def env(self) -> ExperimentEnvironment:
        return self._env

    @property
    def graph(self) -> Graph:
        return self._graph

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def compiled(self) -> CompiledGraph | None:
        return self._compiled

    def _ensure_not_started(self, action: str) -> None:
        if self._status in (RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED):
            raise ExecutionStateError(f"Cannot {action}: execution has already started (status {self._status})")

    # === Build ===

    def add(self, kind: str, *, node_id: str | None = None, **inputs: Any) -> NodeHandle:
        self._ensure_not_started("add nodes")
        handle = self._graph.add(kind, node_id=node_id, **inputs)
        self._status = RunStatus.BUILDING
        return handle

    def declare_input(self, kind: ValueKind, *, name: str | None = None, item_kind: ValueKind | None = None) -> Variable:
        self._ensure_not_started("declare inputs")
        variable = self._graph.declare_input(kind, name=name, item_kind=item_kind)
        self._status = RunStatus.BUILDING
        return variable

    def compile(self) -> CompiledGraph:
        """Compile the graph with every external Variable treated as bound.

        Idempotent: compiling an unchanged graph again yields the same order.
        """
        self._ensure_not_started("compile")
        self._compiled = compile_graph(self._graph, self._env.registry, bound=self._graph.external_variables())
        self._status = RunStatus.COMPILED
        return self._compiled

    # === Bind ===

    def set_input(self, variable: Variable, value: Any) -> None:
        """Bind a value to an external Variable.

        Raises:
            ExecutionStateError: If execution has already started
            GraphBuildError: If ``variable`` is not an external Variable of this graph
            TypeMismatchError: If ``value`` does not match the Variable's kind
        """
        self._ensure_not_started("bind inputs")
        if not self._graph.owns(variable):
            raise GraphBuildError(f"Variable '{variable.id}' was not declared by this experiment's graph")
        if not variable.is_external:
            raise GraphBuildError(f"Variable '{variable.id}' is produced by node '{variable.producer}' and cannot be bound")
        if not check_value(variable.kind, value, variable.item_kind):
            raise TypeMismatchError(f"input '{variable.name or variable.id}'", variable.describe_type(), describe_value(value))
        self._inputs[variable] = value

    # === Run ===

    def run(self) -> None:
        """Execute the compiled graph with the bound inputs.

        Raises:
            ExecutionStateError: If the graph is not compiled, was modified
                after compilation, or was already run
            UnresolvedInputError: If an external Variable has no bound value
            InvocationError: If a node fails
        """
        self._ensure_not_started("run")
        if self._compiled is None or self._status != RunStatus.COMPILED:
            raise ExecutionStateError("Graph must be compiled before it is run")
        if not self._compiled.is_current:
            raise ExecutionStateError("Graph was modified after compilation; compile it again")

        self._status = RunStatus.RUNNING
        slog.info("experiment_started", nodes=self._graph.node_count, seed=self._env.seed)
        start_nodes = self._graph.node_count
        try:
            self._values = Executor(self._env.registry, self._env).execute(self._compiled, self._inputs)
        except Exception:
            self._status = RunStatus.FAILED
            slog.error("experiment_failed", nodes=start_nodes)
            raise
        self._status = RunStatus.COMPLETED
        slog.info("experiment_completed", nodes=start_nodes)

    # === Read ===

    def get_output(self, variable: Variable) -> Any:
        """Value of ``variable`` from the completed run.

        Raises:
            ExecutionStateError: If the run has not completed or the
                Variable was never produced
        """
        if self._status != RunStatus.COMPLETED or self._values is None:
            raise ExecutionStateError(f"Outputs are only available after a completed run (status {self._status})")
        return self._values.get(variable)
