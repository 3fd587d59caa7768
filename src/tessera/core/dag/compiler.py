# src/tessera/core/dag/compiler.py
"""Graph compilation: validation and execution ordering.

Uses NetworkX for the dependency graph. Node A precedes node B when B
consumes a Variable produced by A; ties between independent nodes are
broken by authoring order, so the same graph always compiles to the same
order.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import networkx as nx

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import (
    CyclicGraphError,
    GraphValidationError,
    TemplateError,
    TypeMismatchError,
    UnresolvedInputError,
)
from tessera.contracts.types import NodeID, VariableID
from tessera.core.dag.graph import Graph, Subgraph
from tessera.core.dag.models import Node, Variable
from tessera.core.logging import get_logger
from tessera.core.values import check_value, describe_value

if TYPE_CHECKING:
    from tessera.plugins.base import EntryPointSpec, InputParam
    from tessera.plugins.manager import EntryPointRegistry

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CompiledGraph:
    """Validated execution plan for one version of a graph."""

    graph: Graph
    order: tuple[NodeID, ...]
    bound: frozenset[VariableID]
    graph_version: int

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self.graph.node(node_id) for node_id in self.order)

    @property
    def is_current(self) -> bool:
        """False once the graph has been modified after compilation."""
        return self.graph.version == self.graph_version


def compile_graph(
    graph: Graph,
    registry: EntryPointRegistry | None = None,
    *,
    bound: Iterable[Variable] = (),
) -> CompiledGraph:
    """Validate ``graph`` and compute its execution order.

    Args:
        graph: Graph to compile
        registry: Registry to resolve node kinds against (defaults to the graph's)
        bound: External Variables the caller will bind before execution

    Raises:
        UnknownEntryPointError: A node kind is not registered
        UnresolvedInputError: An input has no producer and is not bound
        TypeMismatchError: A Variable or literal does not match its parameter type
        TemplateError: A macro node's template is malformed
        CyclicGraphError: The dependencies cannot be ordered
    """
    registry = registry if registry is not None else graph.registry
    bound_ids = frozenset(variable.id for variable in bound)

    dependencies = nx.DiGraph()
    authoring_index: dict[NodeID, int] = {}
    for index, node in enumerate(graph.nodes):
        authoring_index[node.id] = index
        dependencies.add_node(node.id)

    for node in graph.nodes:
        spec = registry.resolve(node.kind)
        _check_node(graph, node, spec, bound_ids, registry)
        for _param, variable in node.input_variables():
            if variable.producer is not None:
                dependencies.add_edge(variable.producer, node.id)

    try:
        order = tuple(nx.lexicographical_topological_sort(dependencies, key=lambda node_id: authoring_index[node_id]))
    except nx.NetworkXUnfeasible:
        raise CyclicGraphError(_unresolved_remainder(dependencies, authoring_index)) from None

    logger.debug("graph_compiled", order=list(order), version=graph.version)
    return CompiledGraph(graph=graph, order=order, bound=bound_ids, graph_version=graph.version)


def _unresolved_remainder(dependencies: nx.DiGraph, authoring_index: dict[NodeID, int]) -> list[NodeID]:
    """Nodes Kahn's algorithm never frees: cycle members and their descendants."""
    in_degree = dict(dependencies.in_degree())
    ready = [node_id for node_id, degree in in_degree.items() if degree == 0]
    resolved: set[NodeID] = set()
    while ready:
        current = ready.pop()
        resolved.add(current)
        for successor in dependencies.successors(current):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                ready.append(successor)
    return sorted((node_id for node_id in dependencies if node_id not in resolved), key=authoring_index.__getitem__)


def _check_node(
    graph: Graph,
    node: Node,
    spec: EntryPointSpec,
    bound_ids: frozenset[VariableID],
    registry: EntryPointRegistry,
) -> None:
    for param, declared in spec.inputs.items():
        if param not in node.inputs:
            if declared.required:
                raise UnresolvedInputError(node.id, param, None)
            continue
        _check_input(graph, node, param, declared, node.inputs[param], bound_ids)
    for param in node.inputs:
        if param not in spec.inputs:
            raise GraphValidationError(f"Node '{node.id}': entry point '{spec.kind}' has no input '{param}'")
    if spec.is_macro:
        _check_template(node, spec, registry)


def _check_input(
    graph: Graph,
    node: Node,
    param: str,
    declared: InputParam,
    value: Any,
    bound_ids: frozenset[VariableID],
) -> None:
    where = f"node '{node.id}' input '{param}'"
    if isinstance(value, Variable):
        _check_variable(graph, node, param, value, bound_ids)
        if value.kind != declared.kind:
            raise TypeMismatchError(where, declared.describe_type(), value.describe_type())
        if declared.item_kind is not None and value.item_kind is not None and value.item_kind != declared.item_kind:
            raise TypeMismatchError(where, declared.describe_type(), value.describe_type())
        return

    if isinstance(value, list | tuple) and any(isinstance(item, Variable) for item in value):
        if declared.kind != ValueKind.VECTOR:
            raise TypeMismatchError(where, declared.describe_type(), "vector")
        for position, item in enumerate(value):
            item_where = f"{where}[{position}]"
            if isinstance(item, Variable):
                _check_variable(graph, node, param, item, bound_ids)
                if declared.item_kind is not None and item.kind != declared.item_kind:
                    raise TypeMismatchError(item_where, str(declared.item_kind), item.describe_type())
            elif declared.item_kind is not None and not check_value(declared.item_kind, item):
                raise TypeMismatchError(item_where, str(declared.item_kind), describe_value(item))
        return

    if not check_value(declared.kind, value, declared.item_kind):
        raise TypeMismatchError(where, declared.describe_type(), describe_value(value))


def _check_variable(
    graph: Graph,
    node: Node,
    param: str,
    variable: Variable,
    bound_ids: frozenset[VariableID],
) -> None:
    if not graph.owns(variable):
        raise UnresolvedInputError(node.id, param, variable.id, "not declared in this graph")
    if variable.is_external and variable.id not in bound_ids:
        raise UnresolvedInputError(node.id, param, variable.id)


def _check_template(node: Node, spec: EntryPointSpec, registry: EntryPointRegistry) -> None:
    templates = [value for value in node.inputs.values() if isinstance(value, Subgraph)]
    if not templates:
        raise TemplateError(node.id, "macro node has no graph template")
    for template in templates:
        missing_inputs = spec.template_inputs - set(template.inputs)
        if missing_inputs:
            raise TemplateError(node.id, f"missing template inputs: {', '.join(sorted(missing_inputs))}")
        missing_outputs = spec.template_outputs - set(template.outputs)
        if missing_outputs:
            raise TemplateError(node.id, f"missing template outputs: {', '.join(sorted(missing_outputs))}")
        for name, variable in template.inputs.items():
            if not template.graph.owns(variable) or not variable.is_external:
                raise TemplateError(node.id, f"template input '{name}' must be an external Variable of the template graph")
        for name, variable in template.outputs.items():
            if not template.graph.owns(variable):
                raise TemplateError(node.id, f"template output '{name}' references Variable '{variable.id}' absent from the template graph")
        try:
            compile_graph(template.graph, registry, bound=template.inputs.values())
        except TemplateError:
            raise
        except GraphValidationError as e:
            raise TemplateError(node.id, str(e)) from e
