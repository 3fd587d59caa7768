# src/tessera/engine/executor.py
"""Executor - runs a compiled graph node by node.

The value table is the only channel between nodes: each node's inputs are
gathered from it (or taken as literals) and every declared output is
stored back under its Variable id.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from tessera.contracts.errors import (
    ExecutionStateError,
    InvocationError,
    PartitionError,
    TypeMismatchError,
    UnresolvedInputError,
)
from tessera.contracts.types import VariableID
from tessera.core.dag.models import Node, Variable
from tessera.core.values import check_value, describe_value
from tessera.plugins.context import EntryPointContext

if TYPE_CHECKING:
    from tessera.core.dag.compiler import CompiledGraph
    from tessera.core.environment import ExperimentEnvironment
    from tessera.plugins.base import EntryPointSpec
    from tessera.plugins.manager import EntryPointRegistry

slog = structlog.get_logger(__name__)

type Bindings = Mapping[Variable, Any]


class ValueTable:
    """Values of one graph execution, keyed by Variable id."""

    def __init__(self) -> None:
        self._values: dict[VariableID, Any] = {}

    def __contains__(self, variable: object) -> bool:
        if isinstance(variable, Variable):
            return variable.id in self._values
        return variable in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[VariableID]:
        return iter(self._values)

    def set(self, variable: Variable, value: Any) -> None:
        self._values[variable.id] = value

    def get(self, variable: Variable) -> Any:
        try:
            return self._values[variable.id]
        except KeyError:
            raise ExecutionStateError(f"No value has been produced for Variable '{variable.id}'") from None


class Executor:
    """Executes compiled graphs.

    Example:
        executor = Executor(env.registry, env)
        values = executor.execute(compiled, {data: stream})
        model = values.get(trainer["predictor_model"])
    """

    def __init__(self, registry: EntryPointRegistry, env: ExperimentEnvironment) -> None:
        self._registry = registry
        self._env = env

    def execute(
        self,
        compiled: CompiledGraph,
        bindings: Bindings,
        *,
        scope: tuple[str, ...] = (),
    ) -> ValueTable:
        """Run every node of ``compiled`` in order.

        Args:
            compiled: Current compilation of the graph
            bindings: Values for the external Variables the graph was compiled with
            scope: Node-id path of the enclosing macro nodes (empty at top level)

        Raises:
            ExecutionStateError: If the graph changed after compilation
            UnresolvedInputError: If a bound Variable has no value
            TypeMismatchError: If a bound value has the wrong kind
            InvocationError: If a node fails (execution stops at the first failure)
            PartitionError: If a macro cannot partition its data
        """
        graph = compiled.graph
        if not compiled.is_current:
            raise ExecutionStateError(
                f"Graph was modified after compilation (compiled version {compiled.graph_version}, "
                f"current version {graph.version}); compile it again"
            )

        table = ValueTable()
        by_id = {variable.id: value for variable, value in bindings.items()}
        for variable_id in compiled.bound:
            variable = graph.variable(variable_id)
            if variable_id not in by_id:
                raise UnresolvedInputError(None, variable.name or variable.id, variable.id, "no value was bound before execution")
            value = by_id[variable_id]
            if not check_value(variable.kind, value, variable.item_kind):
                raise TypeMismatchError(f"input '{variable.name or variable.id}'", variable.describe_type(), describe_value(value))
            table.set(variable, value)

        for node in compiled.nodes:
            self._run_node(node, table, scope)
        return table

    def _run_node(self, node: Node, table: ValueTable, scope: tuple[str, ...]) -> None:
        spec = self._registry.resolve(node.kind)
        inputs = spec.defaults()
        inputs.update({param: _resolve(value, table) for param, value in node.inputs.items()})
        ctx = EntryPointContext(
            env=self._env,
            registry=self._registry,
            node_id=node.id,
            kind=node.kind,
            scope=(*scope, node.id),
        )

        slog.debug("node_started", node_id=node.id, kind=node.kind)
        start = time.perf_counter()
        try:
            outputs = spec.invoke(ctx, inputs)
        except (InvocationError, PartitionError):
            raise
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            slog.warning("node_failed", node_id=node.id, kind=node.kind, duration_ms=duration_ms, error=str(e))
            raise InvocationError(node.id, node.kind, e) from e
        duration_ms = (time.perf_counter() - start) * 1000

        _check_outputs(node, spec, outputs)
        for name, variable in node.outputs.items():
            table.set(variable, outputs[name])
        slog.debug("node_completed", node_id=node.id, kind=node.kind, duration_ms=duration_ms)


def _resolve(value: Any, table: ValueTable) -> Any:
    if isinstance(value, Variable):
        return table.get(value)
    if isinstance(value, list):
        return [_resolve(item, table) for item in value]
    if isinstance(value, tuple):
        return tuple(_resolve(item, table) for item in value)
    return value


def _check_outputs(node: Node, spec: EntryPointSpec, outputs: Any) -> None:
    if not isinstance(outputs, Mapping):
        raise InvocationError(node.id, node.kind, f"entry point returned {type(outputs).__name__}, expected a mapping of outputs")
    missing = [name for name in spec.outputs if name not in outputs]
    if missing:
        raise InvocationError(node.id, node.kind, f"entry point did not produce declared outputs: {', '.join(missing)}")
    extra = sorted(name for name in outputs if name not in spec.outputs)
    if extra:
        raise InvocationError(node.id, node.kind, f"entry point produced undeclared outputs: {', '.join(extra)}")
    for name, declared in spec.outputs.items():
        if not check_value(declared.kind, outputs[name], declared.item_kind):
            raise InvocationError(
                node.id,
                node.kind,
                f"output '{name}' should be {declared.kind}, got {describe_value(outputs[name])}",
            )
