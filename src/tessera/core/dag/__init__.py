# src/tessera/core/dag/__init__.py
"""Graph construction, serialization and compilation."""

from tessera.core.dag.compiler import CompiledGraph, compile_graph
from tessera.core.dag.graph import Graph, Subgraph
from tessera.core.dag.models import Node, NodeHandle, Variable

__all__ = [
    "CompiledGraph",
    "Graph",
    "Node",
    "NodeHandle",
    "Subgraph",
    "Variable",
    "compile_graph",
]
