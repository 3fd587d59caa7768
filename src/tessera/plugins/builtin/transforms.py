# src/tessera/plugins/builtin/transforms.py
"""Built-in data transforms.

Every transform returns its transformed data as ``output_data`` and a
replayable ``model``. Fitting (vocabularies, ranges) happens when the
node runs; the transformed rows themselves are produced lazily.
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterator, Sequence
from typing import Any, Literal

from pydantic import Field, model_validator

from tessera.contracts.enums import ColumnKind, ValueKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType, Schema
from tessera.core.models import TransformModel
from tessera.plugins.base import entry_point, optional, produces, required
from tessera.plugins.builtin.common import as_float, is_missing, require_column, sort_values, value_text
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

_TRANSFORM_OUTPUTS = {
    "output_data": produces(ValueKind.ROW_STREAM),
    "model": produces(ValueKind.TRANSFORM_MODEL),
}


class ColumnSpec(EntryPointConfig):
    """Output column ``name`` computed from ``source`` (defaults to ``name``)."""

    name: str
    source: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value

    @property
    def source_column(self) -> str:
        return self.source if self.source is not None else self.name


def _fitted(name: str, data: RowStream, apply: Any) -> dict[str, Any]:
    return {"output_data": apply(data), "model": TransformModel.of(name, apply)}


# =============================================================================
# No-op
# =============================================================================


@entry_point(
    "transforms.no_operation",
    inputs={"data": required(ValueKind.ROW_STREAM)},
    outputs=_TRANSFORM_OUTPUTS,
)
def no_operation(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Pass data through unchanged."""
    return {"output_data": inputs["data"], "model": TransformModel.identity()}


# =============================================================================
# Column concatenation
# =============================================================================


class ConcatColumn(EntryPointConfig):
    name: str
    source: list[str] = Field(min_length=1)


class ColumnConcatenatorConfig(EntryPointConfig):
    column: list[ConcatColumn] = Field(min_length=1)


def _concat_type(schema: Schema, spec: ConcatColumn) -> ColumnType:
    item_kinds = set()
    size: int | None = 0
    slot_names: list[str] | None = []
    for source in spec.source:
        column_type = require_column(schema, source, "column_concatenator")
        if column_type.is_vector:
            item_kinds.add(column_type.item_kind)
            if column_type.size is None or size is None:
                size = None
                slot_names = None
            else:
                size += column_type.size
                if slot_names is not None:
                    slot_names.extend(column_type.slot_names or [f"{source}.{index}" for index in range(column_type.size)])
        else:
            item_kinds.add(ColumnKind.TEXT if column_type.kind == ColumnKind.TEXT else ColumnKind.NUMBER)
            if size is not None:
                size += 1
                if slot_names is not None:
                    slot_names.append(source)
    if len(item_kinds) != 1:
        raise EntryPointConfigError(f"column_concatenator: sources of '{spec.name}' mix text and numeric columns")
    item_kind = item_kinds.pop()
    return ColumnType(ColumnKind.VECTOR, item_kind=item_kind, size=size, slot_names=tuple(slot_names) if slot_names is not None else None)


@entry_point(
    "transforms.column_concatenator",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": required(ValueKind.VECTOR, description="[{name, source: [columns...]}]"),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def column_concatenator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Concatenate scalar and vector columns into vector columns."""
    cfg = ColumnConcatenatorConfig.from_inputs(inputs)

    def apply(stream: RowStream) -> RowStream:
        schema = stream.schema
        columns = [Column(spec.name, _concat_type(schema, spec)) for spec in cfg.column]
        plans = [
            [(schema.index_of(source), schema.type_of(source)) for source in spec.source] for spec in cfg.column
        ]

        def compute(row: Row) -> list[Any]:
            out = []
            for plan, column in zip(plans, columns, strict=True):
                values: list[Any] = []
                for position, column_type in plan:
                    value = row[position]
                    items = value if column_type.is_vector else (value,)
                    if column.type.item_kind == ColumnKind.NUMBER:
                        values.extend(as_float(item) for item in items)
                    else:
                        values.extend(items)
                out.append(tuple(values))
            return out

        return stream.with_computed_columns(columns, compute)

    return _fitted("column_concatenator", inputs["data"], apply)


# =============================================================================
# Categorical one-hot
# =============================================================================


class ColumnListConfig(EntryPointConfig):
    column: list[ColumnSpec] = Field(min_length=1)


def _vocabulary(stream: RowStream, source: str, kind: str) -> list[str]:
    column_type = require_column(stream.schema, source, kind)
    if not column_type.is_discrete:
        raise EntryPointConfigError(f"{kind}: column '{source}' must be a scalar column, got {column_type.describe()}")
    seen: dict[str, None] = {}
    for value in stream.column_values(source):
        if not is_missing(value):
            seen.setdefault(value_text(value, column_type), None)
    return list(seen)


@entry_point(
    "transforms.categorical_one_hot_vectorizer",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": required(ValueKind.VECTOR, description="[{name, source?}] or column names"),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def categorical_one_hot_vectorizer(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """One-hot encode categorical columns with vocabularies fitted on the input."""
    cfg = ColumnListConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    vocabularies = {spec.name: _vocabulary(data, spec.source_column, "categorical_one_hot_vectorizer") for spec in cfg.column}

    def apply(stream: RowStream) -> RowStream:
        schema = stream.schema
        plans = []
        columns = []
        for spec in cfg.column:
            source_type = require_column(schema, spec.source_column, "categorical_one_hot_vectorizer")
            vocabulary = vocabularies[spec.name]
            plans.append((schema.index_of(spec.source_column), source_type, {value: index for index, value in enumerate(vocabulary)}))
            columns.append(Column(spec.name, ColumnType.vector(len(vocabulary), slot_names=vocabulary)))

        def compute(row: Row) -> list[Any]:
            out = []
            for position, source_type, index in plans:
                vector = [0.0] * len(index)
                value = row[position]
                if not is_missing(value):
                    slot = index.get(value_text(value, source_type))
                    if slot is not None:
                        vector[slot] = 1.0
                out.append(tuple(vector))
            return out

        return stream.with_computed_columns(columns, compute)

    ctx.logger.debug("vocabularies_fitted", sizes={name: len(vocabulary) for name, vocabulary in vocabularies.items()})
    return _fitted("categorical_one_hot_vectorizer", data, apply)


# =============================================================================
# Min-max normalization
# =============================================================================


def _slot_ranges(stream: RowStream, source: str) -> list[tuple[float, float]]:
    column_type = require_column(stream.schema, source, "min_max_normalizer")
    if not column_type.is_numeric or (column_type.is_vector and column_type.size is None):
        raise EntryPointConfigError(f"min_max_normalizer: column '{source}' must be numeric with a known size, got {column_type.describe()}")
    width = column_type.size if column_type.is_vector else 1
    lows = [math.inf] * (width or 0)
    highs = [-math.inf] * (width or 0)
    for value in stream.column_values(source):
        items = value if column_type.is_vector else (value,)
        for slot, item in enumerate(items):
            number = as_float(item)
            if math.isnan(number):
                continue
            lows[slot] = min(lows[slot], number)
            highs[slot] = max(highs[slot], number)
    return list(zip(lows, highs, strict=True))


def _scale(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return value
    if not high > low:
        return 0.0
    return (value - low) / (high - low)


@entry_point(
    "transforms.min_max_normalizer",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": required(ValueKind.VECTOR, description="[{name, source?}] or column names"),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def min_max_normalizer(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Scale numeric columns to [0, 1] using ranges fitted on the input."""
    cfg = ColumnListConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    ranges = {spec.name: _slot_ranges(data, spec.source_column) for spec in cfg.column}

    def apply(stream: RowStream) -> RowStream:
        schema = stream.schema
        plans = []
        columns = []
        for spec in cfg.column:
            source_type = require_column(schema, spec.source_column, "min_max_normalizer")
            plans.append((schema.index_of(spec.source_column), source_type.is_vector, ranges[spec.name]))
            if source_type.is_vector:
                columns.append(Column(spec.name, ColumnType.vector(source_type.size, slot_names=source_type.slot_names)))
            else:
                columns.append(Column(spec.name, ColumnType.number()))

        def compute(row: Row) -> list[Any]:
            out: list[Any] = []
            for position, is_vector, slot_ranges in plans:
                value = row[position]
                items = value if is_vector else (value,)
                scaled = tuple(_scale(as_float(item), low, high) for item, (low, high) in zip(items, slot_ranges, strict=True))
                out.append(scaled if is_vector else scaled[0])
            return out

        return stream.with_computed_columns(columns, compute)

    return _fitted("min_max_normalizer", data, apply)


# =============================================================================
# Random numbers
# =============================================================================


class RandomNumberConfig(EntryPointConfig):
    column: str = "Random"


@entry_point(
    "transforms.random_number_generator",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": optional(ValueKind.SCALAR, "Random"),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def random_number_generator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Add a column of uniform [0, 1) numbers seeded from the experiment seed."""
    cfg = RandomNumberConfig.from_inputs(inputs)
    seed = ctx.rng().getrandbits(64)
    column = Column(cfg.column, ColumnType.number())

    def apply(stream: RowStream) -> RowStream:
        widened = stream.schema.with_column(column)
        position = widened.index_of(cfg.column)
        width = len(widened)

        def rows() -> Iterator[Row]:
            # Same seed on every pass, so the stream is re-iterable.
            rng = random.Random(seed)
            for row in stream:
                out = list(row)
                out.extend([None] * (width - len(out)))
                out[position] = rng.random()
                yield tuple(out)

        return RowStream(widened, rows)

    return _fitted("random_number_generator", inputs["data"], apply)


# =============================================================================
# Row filtering
# =============================================================================


class RowRangeFilterConfig(EntryPointConfig):
    column: str
    min: float | None = None
    max: float | None = None
    complement: bool = False
    include_min: bool = True
    include_max: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> RowRangeFilterConfig:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


def _in_range(value: float, cfg: RowRangeFilterConfig) -> bool:
    if math.isnan(value):
        return False
    if cfg.min is not None and (value < cfg.min or (value == cfg.min and not cfg.include_min)):
        return False
    if cfg.max is not None and (value > cfg.max or (value == cfg.max and not cfg.include_max)):
        return False
    return True


@entry_point(
    "transforms.row_range_filter",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": required(ValueKind.SCALAR),
        "min": optional(ValueKind.SCALAR),
        "max": optional(ValueKind.SCALAR),
        "complement": optional(ValueKind.SCALAR, False),
        "include_min": optional(ValueKind.SCALAR, True),
        "include_max": optional(ValueKind.SCALAR, False),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def row_range_filter(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Keep rows whose numeric column lies in [min, max)."""
    cfg = RowRangeFilterConfig.from_inputs(inputs)

    def apply(stream: RowStream) -> RowStream:
        column_type = require_column(stream.schema, cfg.column, "row_range_filter")
        if column_type.kind not in (ColumnKind.NUMBER, ColumnKind.KEY):
            raise EntryPointConfigError(f"row_range_filter: column '{cfg.column}' must be a number or key column")
        position = stream.schema.index_of(cfg.column)
        return stream.select_rows(lambda _index, row: _in_range(as_float(row[position]), cfg) != cfg.complement)

    return _fitted("row_range_filter", inputs["data"], apply)


# =============================================================================
# Text to key
# =============================================================================


class TextToKeyConfig(EntryPointConfig):
    column: list[ColumnSpec] = Field(min_length=1)
    sort: Literal["occurrence", "value"] = "occurrence"
    max_num_terms: int | None = Field(default=None, ge=1)


def _sort_terms(values: Sequence[Any], order: str) -> list[Any]:
    if order == "occurrence":
        return list(values)
    return sort_values(values)


@entry_point(
    "transforms.text_to_key_converter",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "column": required(ValueKind.VECTOR, description="[{name, source?}] or column names"),
        "sort": optional(ValueKind.SCALAR, "occurrence"),
        "max_num_terms": optional(ValueKind.SCALAR),
    },
    outputs=_TRANSFORM_OUTPUTS,
)
def text_to_key_converter(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Map scalar values to key indexes; slot names hold the original values."""
    cfg = TextToKeyConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    terms: dict[str, list[Any]] = {}
    for spec in cfg.column:
        column_type = require_column(data.schema, spec.source_column, "text_to_key_converter")
        if not column_type.is_discrete:
            raise EntryPointConfigError(f"text_to_key_converter: column '{spec.source_column}' must be a scalar column")
        seen: dict[Any, None] = {}
        for value in data.column_values(spec.source_column):
            if not is_missing(value):
                seen.setdefault(value, None)
        ordered = _sort_terms(list(seen), cfg.sort)
        terms[spec.name] = ordered[: cfg.max_num_terms] if cfg.max_num_terms is not None else ordered

    def apply(stream: RowStream) -> RowStream:
        schema = stream.schema
        plans = []
        columns = []
        for spec in cfg.column:
            source_type = require_column(schema, spec.source_column, "text_to_key_converter")
            values = terms[spec.name]
            plans.append((schema.index_of(spec.source_column), {value: index for index, value in enumerate(values)}))
            columns.append(Column(spec.name, ColumnType.key([value_text(value, source_type) for value in values])))

        def compute(row: Row) -> list[Any]:
            return [index.get(row[position]) if not is_missing(row[position]) else None for position, index in plans]

        return stream.with_computed_columns(columns, compute)

    return _fitted("text_to_key_converter", data, apply)


ENTRY_POINTS = [
    no_operation,
    column_concatenator,
    categorical_one_hot_vectorizer,
    min_max_normalizer,
    random_number_generator,
    row_range_filter,
    text_to_key_converter,
]
