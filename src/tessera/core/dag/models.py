# src/tessera/core/dag/models.py
"""Types for graph construction: Variables, Nodes and node handles.

Leaf module of the dag package (no intra-package imports).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from tessera.contracts.enums import ValueKind
from tessera.contracts.types import NodeID, VariableID


@dataclass(frozen=True, slots=True)
class Variable:
    """Typed placeholder for a value flowing between nodes.

    ``producer`` is the id of the node that outputs the Variable, or None
    for external Variables that the caller (or a macro) binds before
    execution. Variables are handles into their graph's variable table:
    a graph only accepts the exact Variable objects it created.
    """

    id: VariableID
    kind: ValueKind
    producer: NodeID | None = None
    item_kind: ValueKind | None = None
    name: str | None = None

    @property
    def is_external(self) -> bool:
        return self.producer is None

    def describe_type(self) -> str:
        if self.item_kind is not None:
            return f"{self.kind}<{self.item_kind}>"
        return str(self.kind)


def iter_variables(value: Any) -> Iterator[Variable]:
    """Yield every Variable referenced by an input value (lists are flattened)."""
    if isinstance(value, Variable):
        yield value
    elif isinstance(value, list | tuple):
        for item in value:
            yield from iter_variables(item)


@dataclass(frozen=True, slots=True)
class Node:
    """One operation in a graph.

    ``inputs`` maps parameter names to a Variable, a literal, or a list
    mixing both. Parameters absent from ``inputs`` take the entry point's
    default at execution time.
    """

    id: NodeID
    kind: str
    inputs: Mapping[str, Any]
    outputs: Mapping[str, Variable]

    def input_variables(self) -> Iterator[tuple[str, Variable]]:
        """Yield (param, Variable) for every Variable this node consumes."""
        for param, value in self.inputs.items():
            for variable in iter_variables(value):
                yield param, variable


@dataclass(frozen=True, slots=True)
class NodeHandle:
    """Result of adding a node to a graph.

    ``outputs`` holds the freshly declared output Variables. ``inputs``
    holds the Variable bound to each Variable-valued input, including
    the external placeholders declared for omitted required inputs; these
    are what a macro binds when the graph is used as a template.
    """

    node: Node
    inputs: Mapping[str, Variable]
    outputs: Mapping[str, Variable]

    @property
    def id(self) -> NodeID:
        return self.node.id

    def __getitem__(self, output: str) -> Variable:
        try:
            return self.outputs[output]
        except KeyError:
            raise KeyError(f"Node '{self.node.id}' ({self.node.kind}) has no output '{output}'; outputs: {', '.join(self.outputs)}") from None
