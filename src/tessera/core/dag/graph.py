# src/tessera/core/dag/graph.py
"""Graph builder.

A Graph is an ordered list of nodes plus the table of Variables they
reference. Building only checks local shape (known parameter names,
unique node ids, Variables owned by this graph); ordering, resolution and
type checks happen in the compiler.

Graphs are plain values: a macro template is a Graph wrapped in a
Subgraph, and every macro instantiation works on a clone.
"""

from __future__ import annotations

import difflib
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import GraphBuildError, TemplateError
from tessera.contracts.types import NodeID, VariableID
from tessera.core.canonical import stable_hash
from tessera.core.dag.models import Node, NodeHandle, Variable, iter_variables

if TYPE_CHECKING:
    from tessera.plugins.base import EntryPointSpec
    from tessera.plugins.manager import EntryPointRegistry

_VALID_ID = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


def _check_id(value: str, what: str) -> None:
    if not _VALID_ID.match(value):
        raise GraphBuildError(f"Invalid {what} '{value}': must start with a letter or underscore and contain only letters, digits, '_' or '-'")


class Graph:
    """Mutable graph under construction.

    Every mutation bumps ``version``; a CompiledGraph remembers the
    version it was compiled against and is stale once they differ.

    Example:
        graph = Graph(registry)
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        trainer = graph.add("trainers.logistic_regression_binary_classifier", training_data=data)
        model = trainer["predictor_model"]
    """

    def __init__(self, registry: EntryPointRegistry) -> None:
        self._registry = registry
        self._nodes: dict[NodeID, Node] = {}
        self._variables: dict[VariableID, Variable] = {}
        self._version = 0
        self._input_count = 0

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, variables={len(self._variables)}, version={self._version})"

    @property
    def registry(self) -> EntryPointRegistry:
        return self._registry

    @property
    def nodes(self) -> tuple[Node, ...]:
        """Nodes in authoring order."""
        return tuple(self._nodes.values())

    @property
    def variables(self) -> Mapping[VariableID, Variable]:
        return MappingProxyType(self._variables)

    @property
    def version(self) -> int:
        return self._version

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> Node:
        try:
            return self._nodes[NodeID(node_id)]
        except KeyError:
            raise KeyError(f"Graph has no node '{node_id}'") from None

    def variable(self, variable_id: str) -> Variable:
        try:
            return self._variables[VariableID(variable_id)]
        except KeyError:
            raise KeyError(f"Graph has no variable '{variable_id}'") from None

    def owns(self, variable: Variable) -> bool:
        """True if ``variable`` is the exact Variable object this graph declared."""
        return self._variables.get(variable.id) is variable

    def external_variables(self) -> list[Variable]:
        """Variables with no producer, in declaration order."""
        return [variable for variable in self._variables.values() if variable.is_external]

    def find_input(self, name: str) -> Variable:
        """Look up an external Variable by name (or id)."""
        for variable in self.external_variables():
            if variable.name == name or variable.id == name:
                return variable
        names = [variable.name or variable.id for variable in self.external_variables()]
        raise KeyError(f"Graph has no external input '{name}'; inputs: {', '.join(names) or '(none)'}")

    # === Building ===

    def declare_input(
        self,
        kind: ValueKind,
        *,
        name: str | None = None,
        item_kind: ValueKind | None = None,
    ) -> Variable:
        """Declare an external Variable bound later by the caller or a macro."""
        if name is not None:
            _check_id(name, "input name")
            variable_id = VariableID(name)
            if variable_id in self._variables:
                raise GraphBuildError(f"Variable '{name}' is already declared in this graph")
        else:
            variable_id = self._next_input_id()
        return self._declare(Variable(variable_id, ValueKind(kind), None, item_kind, name))

    def add(self, kind: str, *, node_id: str | None = None, **inputs: Any) -> NodeHandle:
        """Append a node of entry-point ``kind``.

        Raises:
            UnknownEntryPointError: If ``kind`` is not registered
            GraphBuildError: On unknown parameter names, a duplicate node id,
                or a Variable declared by another graph
            TemplateError: If a bare Graph template has no inferable inputs
        """
        spec = self._registry.resolve(kind)
        resolved_id = self._claim_node_id(spec, node_id)
        self._check_params(spec, resolved_id, inputs)
        for param, value in inputs.items():
            # A bare Graph passed as a template gets its inputs and outputs inferred.
            if isinstance(value, Graph) and spec.inputs[param].kind == ValueKind.GRAPH:
                inputs[param] = Subgraph.infer(value)
        for param, value in inputs.items():
            for variable in iter_variables(value):
                if not self.owns(variable):
                    raise GraphBuildError(
                        f"Node '{resolved_id}' input '{param}' references Variable '{variable.id}' that was not declared by this graph"
                    )
        outputs = {
            name: Variable(VariableID(f"{resolved_id}.{name}"), output.kind, resolved_id, output.item_kind)
            for name, output in spec.outputs.items()
        }
        return self._place(spec, resolved_id, dict(inputs), outputs)

    def clone(self, prefix: str) -> tuple[Graph, dict[VariableID, Variable]]:
        """Copy this graph with every node and Variable id prefixed by ``prefix/``.

        Returns the clone and a map from original Variable ids to the
        clone's Variables. Embedded Subgraph literals are shared, not
        copied: templates are never mutated.
        """
        clone = Graph(self._registry)
        var_map: dict[VariableID, Variable] = {}
        for variable in self._variables.values():
            producer = NodeID(f"{prefix}/{variable.producer}") if variable.producer is not None else None
            copy = Variable(VariableID(f"{prefix}/{variable.id}"), variable.kind, producer, variable.item_kind, variable.name)
            clone._variables[copy.id] = copy
            var_map[variable.id] = copy
        for node in self._nodes.values():
            copy_id = NodeID(f"{prefix}/{node.id}")
            clone._nodes[copy_id] = Node(
                id=copy_id,
                kind=node.kind,
                inputs=MappingProxyType({param: _remap(value, var_map) for param, value in node.inputs.items()}),
                outputs=MappingProxyType({name: var_map[variable.id] for name, variable in node.outputs.items()}),
            )
        clone._input_count = self._input_count
        clone._version = 1
        return clone, var_map

    # === Serialization ===

    def to_dict(self) -> dict[str, Any]:
        from tessera.core.dag.serialization import graph_to_dict

        return graph_to_dict(self)

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON of ``to_dict()``; equal graphs share it."""
        return stable_hash(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], registry: EntryPointRegistry) -> Graph:
        from tessera.core.dag.serialization import graph_from_dict

        return graph_from_dict(data, registry)

    # === Internals shared with the deserializer ===

    def _next_input_id(self) -> VariableID:
        while True:
            candidate = VariableID(f"input_{self._input_count}")
            self._input_count += 1
            if candidate not in self._variables:
                return candidate

    def _declare(self, variable: Variable) -> Variable:
        self._variables[variable.id] = variable
        self._version += 1
        return variable

    def _claim_node_id(self, spec: EntryPointSpec, node_id: str | None) -> NodeID:
        if node_id is not None:
            _check_id(node_id, "node id")
            if node_id in self._nodes:
                raise GraphBuildError(f"Duplicate node id '{node_id}'")
            return NodeID(node_id)
        index = len(self._nodes)
        while f"{spec.short_name}_{index}" in self._nodes:
            index += 1
        return NodeID(f"{spec.short_name}_{index}")

    def _check_params(self, spec: EntryPointSpec, node_id: str, inputs: Mapping[str, Any]) -> None:
        for param in inputs:
            if param not in spec.inputs:
                suggestions = difflib.get_close_matches(param, list(spec.inputs), n=3)
                hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
                raise GraphBuildError(f"Entry point '{spec.kind}' (node '{node_id}') has no input '{param}'.{hint}")

    def _place(
        self,
        spec: EntryPointSpec,
        node_id: NodeID,
        inputs: dict[str, Any],
        outputs: dict[str, Variable],
    ) -> NodeHandle:
        for param, declared in spec.inputs.items():
            if declared.required and param not in inputs:
                placeholder_id = VariableID(f"{node_id}.{param}")
                inputs[param] = self._variables.get(placeholder_id) or Variable(placeholder_id, declared.kind, None, declared.item_kind)
                self._variables[placeholder_id] = inputs[param]
        for variable in outputs.values():
            self._variables[variable.id] = variable
        node = Node(node_id, spec.kind, MappingProxyType(inputs), MappingProxyType(outputs))
        self._nodes[node_id] = node
        self._version += 1
        bound = {param: value for param, value in inputs.items() if isinstance(value, Variable)}
        return NodeHandle(node, MappingProxyType(bound), node.outputs)


def _remap(value: Any, var_map: Mapping[VariableID, Variable]) -> Any:
    if isinstance(value, Variable):
        # Variables unknown to the source graph stay as they are; the
        # compiler reports them as unresolved.
        return var_map.get(value.id, value)
    if isinstance(value, list):
        return [_remap(item, var_map) for item in value]
    if isinstance(value, tuple):
        return tuple(_remap(item, var_map) for item in value)
    return value


@dataclass(frozen=True, slots=True)
class Subgraph:
    """Graph template embedded as a literal in a macro node.

    ``inputs`` maps macro-side names (e.g. "data") to external Variables
    of the template; ``outputs`` maps names (e.g. "predictor_model") to
    Variables the template produces.
    """

    graph: Graph
    inputs: Mapping[str, Variable]
    outputs: Mapping[str, Variable]

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))

    @classmethod
    def infer(cls, graph: Graph) -> Subgraph:
        """Build a training template from a graph with one data input.

        The single external row-stream Variable becomes ``data`` and the
        last predictor model produced becomes ``predictor_model``.

        Raises:
            TemplateError: If the graph has no unique data input or
                produces no predictor model.
        """
        streams = [variable for variable in graph.external_variables() if variable.kind == ValueKind.ROW_STREAM]
        if len(streams) != 1:
            found = ", ".join(variable.id for variable in streams) or "none"
            raise TemplateError(None, f"cannot infer the data input: expected exactly one external row_stream Variable, found {found}")
        models = [
            variable
            for node in graph.nodes
            for variable in node.outputs.values()
            if variable.kind == ValueKind.PREDICTOR_MODEL
        ]
        if not models:
            raise TemplateError(None, "cannot infer the model output: no node produces a predictor_model")
        return cls(graph, {"data": streams[0]}, {"predictor_model": models[-1]})
