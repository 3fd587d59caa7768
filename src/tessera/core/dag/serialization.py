# src/tessera/core/dag/serialization.py
"""Plain-dict (YAML/JSON) form of a Graph.

Layout:

    inputs:
      - {id: data, kind: row_stream, name: data}
    nodes:
      - id: train
        kind: trainers.logistic_regression_binary_classifier
        inputs:
          training_data: {$var: data}

Variable references are ``{"$var": id}`` and embedded templates are
``{"$subgraph": {graph: ..., inputs: {...}, outputs: {...}}}``. When a
subgraph omits ``inputs``/``outputs`` they are inferred (see
Subgraph.infer).

Node order in ``nodes`` need not be topological: every node's outputs
are declared before any inputs are decoded, so forward references work
and cycles survive loading for the compiler to report. References to
ids the document never declares decode to Variables the graph does not
own, which the compiler reports as unresolved.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import GraphBuildError, TemplateError
from tessera.contracts.types import NodeID, VariableID
from tessera.core.dag.graph import Graph, Subgraph
from tessera.core.dag.models import Variable

if TYPE_CHECKING:
    from tessera.plugins.manager import EntryPointRegistry

VAR_KEY = "$var"
SUBGRAPH_KEY = "$subgraph"


def graph_to_dict(graph: Graph) -> dict[str, Any]:
    inputs: list[dict[str, Any]] = []
    for variable in graph.external_variables():
        entry: dict[str, Any] = {"id": variable.id, "kind": str(variable.kind)}
        if variable.item_kind is not None:
            entry["item_kind"] = str(variable.item_kind)
        if variable.name is not None:
            entry["name"] = variable.name
        inputs.append(entry)
    nodes = [
        {
            "id": node.id,
            "kind": node.kind,
            "inputs": {param: _encode(value) for param, value in node.inputs.items()},
        }
        for node in graph.nodes
    ]
    return {"inputs": inputs, "nodes": nodes}


def _encode(value: Any) -> Any:
    if isinstance(value, Variable):
        return {VAR_KEY: value.id}
    if isinstance(value, Subgraph):
        return {
            SUBGRAPH_KEY: {
                "graph": graph_to_dict(value.graph),
                "inputs": {name: variable.id for name, variable in value.inputs.items()},
                "outputs": {name: variable.id for name, variable in value.outputs.items()},
            }
        }
    if isinstance(value, list | tuple):
        return [_encode(item) for item in value]
    if isinstance(value, Mapping):
        return {key: _encode(item) for key, item in value.items()}
    return value


def graph_from_dict(data: Mapping[str, Any], registry: EntryPointRegistry) -> Graph:
    """Rebuild a Graph from its dict form.

    Raises:
        GraphBuildError: On malformed documents, unknown parameters or
            duplicate ids
        UnknownEntryPointError: On unregistered node kinds
    """
    if not isinstance(data, Mapping):
        raise GraphBuildError(f"Graph document must be a mapping, got {type(data).__name__}")
    unknown_keys = set(data) - {"inputs", "nodes"}
    if unknown_keys:
        raise GraphBuildError(f"Unknown graph document keys: {', '.join(sorted(unknown_keys))}")

    graph = Graph(registry)
    for entry in data.get("inputs") or []:
        _declare_input(graph, entry)

    # Pass 1: declare every node's outputs so inputs can reference any node.
    pending: list[tuple[Any, NodeID, dict[str, Any], dict[str, Variable]]] = []
    for position, entry in enumerate(data.get("nodes") or []):
        if not isinstance(entry, Mapping) or "kind" not in entry:
            raise GraphBuildError(f"Node entry {position} must be a mapping with a 'kind'")
        spec = registry.resolve(entry["kind"])
        node_id = graph._claim_node_id(spec, entry.get("id"))
        raw_inputs = dict(entry.get("inputs") or {})
        graph._check_params(spec, node_id, raw_inputs)
        outputs = {
            name: Variable(VariableID(f"{node_id}.{name}"), output.kind, node_id, output.item_kind)
            for name, output in spec.outputs.items()
        }
        for variable in outputs.values():
            if variable.id in graph.variables:
                raise GraphBuildError(f"Variable '{variable.id}' is declared twice")
            graph._variables[variable.id] = variable
        # Reserve the id so later auto-generated ids do not reuse it.
        graph._nodes[node_id] = None  # type: ignore[assignment]
        pending.append((spec, node_id, raw_inputs, outputs))

    # Pass 2: decode inputs against the full variable table.
    for spec, node_id, raw_inputs, outputs in pending:
        decoded = {param: _decode(value, graph, spec.inputs[param].kind, registry) for param, value in raw_inputs.items()}
        del graph._nodes[node_id]
        graph._place(spec, node_id, decoded, outputs)
    return graph


def _declare_input(graph: Graph, entry: Any) -> None:
    if not isinstance(entry, Mapping) or "kind" not in entry:
        raise GraphBuildError(f"Graph input entries must be mappings with a 'kind', got {entry!r}")
    try:
        kind = ValueKind(entry["kind"])
        item_kind = ValueKind(entry["item_kind"]) if entry.get("item_kind") else None
    except ValueError as e:
        raise GraphBuildError(f"Invalid graph input {entry!r}: {e}") from e
    name = entry.get("name")
    variable_id = entry.get("id", name)
    if variable_id is None:
        graph.declare_input(kind, item_kind=item_kind)
        return
    if variable_id in graph.variables:
        raise GraphBuildError(f"Variable '{variable_id}' is declared twice")
    graph._declare(Variable(VariableID(str(variable_id)), kind, None, item_kind, name))


def _decode(value: Any, graph: Graph, kind: ValueKind, registry: EntryPointRegistry) -> Any:
    if isinstance(value, Mapping):
        if VAR_KEY in value:
            variable_id = VariableID(str(value[VAR_KEY]))
            if variable_id in graph.variables:
                return graph.variables[variable_id]
            return Variable(variable_id, kind)
        if SUBGRAPH_KEY in value:
            return _decode_subgraph(value[SUBGRAPH_KEY], registry)
        return {key: _decode(item, graph, kind, registry) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item, graph, kind, registry) for item in value]
    return value


def _decode_subgraph(data: Mapping[str, Any], registry: EntryPointRegistry) -> Subgraph:
    if "graph" not in data:
        raise GraphBuildError("Subgraph entries must contain a 'graph'")
    template = graph_from_dict(data["graph"], registry)
    if "inputs" not in data and "outputs" not in data:
        return Subgraph.infer(template)
    try:
        inputs = {name: template.variable(variable_id) for name, variable_id in (data.get("inputs") or {}).items()}
        outputs = {name: template.variable(variable_id) for name, variable_id in (data.get("outputs") or {}).items()}
    except KeyError as e:
        raise TemplateError(None, str(e.args[0])) from e
    return Subgraph(template, inputs, outputs)
