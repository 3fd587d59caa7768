# src/tessera/plugins/builtin/common.py
"""Column names and cell helpers shared by the built-in entry points."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from tessera.contracts.enums import ColumnKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.data.rows import RowStream
from tessera.core.data.schema import ColumnType, Schema

SCORE_COLUMN = "Score"
PROBABILITY_COLUMN = "Probability"
PREDICTED_LABEL_COLUMN = "PredictedLabel"

_POSITIVE_TEXT = frozenset({"1", "true", "yes", "y", "t", "+1", "positive"})


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def as_float(value: Any) -> float:
    if is_missing(value):
        return math.nan
    return float(value)


def value_text(value: Any, column_type: ColumnType | None = None) -> str:
    """Display text of a cell: key slot name, integral float without ".0", or str()."""
    if column_type is not None and column_type.kind == ColumnKind.KEY and column_type.slot_names is not None and isinstance(value, int):
        if 0 <= value < len(column_type.slot_names):
            return column_type.slot_names[value]
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def sort_values(values: Sequence[Any]) -> list[Any]:
    """Numeric order when every value is a number, otherwise text order."""
    if all(isinstance(value, int | float) and not isinstance(value, bool) for value in values):
        return sorted(values)
    return sorted(values, key=str)


def require_column(schema: Schema, name: str, owner: str) -> ColumnType:
    if name not in schema:
        raise EntryPointConfigError(f"{owner}: column '{name}' is not in the data; columns: {', '.join(schema.names)}")
    return schema.type_of(name)


def feature_reader(schema: Schema, column: str, owner: str) -> tuple[int, bool, int | None]:
    """(position, is_vector, width) of a numeric feature column."""
    column_type = require_column(schema, column, owner)
    if not column_type.is_numeric and column_type.kind not in (ColumnKind.BOOL, ColumnKind.KEY):
        raise EntryPointConfigError(f"{owner}: feature column '{column}' must be numeric, got {column_type.describe()}")
    if column_type.is_vector:
        return schema.index_of(column), True, column_type.size
    return schema.index_of(column), False, 1


def features(value: Any, is_vector: bool) -> tuple[float, ...]:
    """Feature values of one cell; missing values count as 0."""
    items = value if is_vector else (value,)
    out = []
    for item in items:
        number = as_float(item)
        out.append(0.0 if math.isnan(number) else number)
    return tuple(out)


def binary_label(value: Any) -> float | None:
    """1.0 for positive, 0.0 for negative, None for missing labels."""
    if is_missing(value):
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, str):
        return 1.0 if value.strip().lower() in _POSITIVE_TEXT else 0.0
    return 1.0 if float(value) > 0 else 0.0


def weight_reader(schema: Schema, column: str | None, owner: str) -> int | None:
    if column is None:
        return None
    column_type = require_column(schema, column, owner)
    if column_type.kind != ColumnKind.NUMBER:
        raise EntryPointConfigError(f"{owner}: weight column '{column}' must be a number column")
    return schema.index_of(column)


def row_weight(row: Sequence[Any], position: int | None) -> float:
    if position is None:
        return 1.0
    weight = as_float(row[position])
    return 0.0 if math.isnan(weight) or weight < 0 else weight


def sigmoid(score: float) -> float:
    if score >= 0:
        return 1.0 / (1.0 + math.exp(-score))
    exp = math.exp(score)
    return exp / (1.0 + exp)


def dot(weights: Sequence[float], values: Sequence[float]) -> float:
    if len(weights) != len(values):
        raise ValueError(f"Feature vector has {len(values)} values, model expects {len(weights)}")
    return sum(weight * value for weight, value in zip(weights, values, strict=True))


def read_column(stream: RowStream, column: str) -> list[Any]:
    return list(stream.column_values(column))
