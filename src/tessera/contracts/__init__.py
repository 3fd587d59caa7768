"""Shared contracts: kinds, identifiers and the error taxonomy.

Leaf package with no intra-package imports, so every layer may depend on
it without creating import cycles.
"""

from tessera.contracts.enums import ColumnKind, PredictionKind, RunStatus, ValueKind
from tessera.contracts.errors import (
    CyclicGraphError,
    EntryPointConfigError,
    ExecutionStateError,
    GraphBuildError,
    GraphValidationError,
    InstantiationWarning,
    InvocationError,
    PartitionError,
    TemplateError,
    TesseraError,
    TypeMismatchError,
    UnknownEntryPointError,
    UnresolvedInputError,
)
from tessera.contracts.types import EntryPointKind, NodeID, VariableID

__all__ = [
    "ColumnKind",
    "CyclicGraphError",
    "EntryPointConfigError",
    "EntryPointKind",
    "ExecutionStateError",
    "GraphBuildError",
    "GraphValidationError",
    "InstantiationWarning",
    "InvocationError",
    "NodeID",
    "PartitionError",
    "PredictionKind",
    "RunStatus",
    "TemplateError",
    "TesseraError",
    "TypeMismatchError",
    "UnknownEntryPointError",
    "UnresolvedInputError",
    "ValueKind",
    "VariableID",
]
