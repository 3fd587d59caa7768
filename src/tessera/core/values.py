# src/tessera/core/values.py
"""Runtime representation of each ValueKind."""

from __future__ import annotations

from typing import Any

from tessera.contracts.enums import ValueKind
from tessera.core.dag.graph import Subgraph
from tessera.core.data.files import FileHandle
from tessera.core.data.rows import RowStream
from tessera.core.models import PredictorModel, TransformModel

_RUNTIME_TYPES: dict[ValueKind, tuple[type, ...]] = {
    ValueKind.SCALAR: (int, float, str, bool, type(None)),
    ValueKind.VECTOR: (list, tuple),
    ValueKind.ROW_STREAM: (RowStream,),
    ValueKind.PREDICTOR_MODEL: (PredictorModel,),
    ValueKind.TRANSFORM_MODEL: (TransformModel,),
    ValueKind.GRAPH: (Subgraph,),
    ValueKind.FILE: (FileHandle,),
}


def check_value(kind: ValueKind, value: Any, item_kind: ValueKind | None = None) -> bool:
    """True if ``value`` is a valid runtime value of ``kind`` (and ``item_kind`` for vectors)."""
    if not isinstance(value, _RUNTIME_TYPES[kind]):
        return False
    if kind == ValueKind.VECTOR and item_kind is not None:
        return all(check_value(item_kind, item) for item in value)
    return True


def describe_value(value: Any) -> str:
    """Name the ValueKind a runtime value belongs to, for error messages."""
    for kind, types in _RUNTIME_TYPES.items():
        if isinstance(value, types) and not (kind == ValueKind.SCALAR and value is None):
            return f"{kind} ({type(value).__name__})"
    return type(value).__name__
