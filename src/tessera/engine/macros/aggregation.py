# src/tessera/engine/macros/aggregation.py
"""Merging per-instantiation evaluation outputs into single streams.

Overall metrics row order, per weighting group (unweighted first):

    Average, Standard Deviation           (unweighted)
    Average, Standard Deviation           (weighted, if any fold is weighted)
    Fold 0 (u), Fold 0 (w), Fold 1 (u), ...

The IsWeighted column exists only when at least one fold reports
weighted metrics.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from tessera.contracts.enums import ColumnKind
from tessera.contracts.errors import InstantiationWarning
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType, Schema

FOLD_INDEX_COLUMN = "Fold Index"
IS_WEIGHTED_COLUMN = "IsWeighted"
WARNING_COLUMN = "WarningText"
AVERAGE_TAG = "Average"
STD_TAG = "Standard Deviation"

WARNINGS_SCHEMA = Schema([Column(WARNING_COLUMN, ColumnType.text())])


def fold_tag(index: int) -> str:
    return f"Fold {index}"


def mean(values: Sequence[float]) -> float:
    if not values:
        return math.nan
    return sum(values) / len(values)


def sample_std(values: Sequence[float]) -> float:
    """Sample standard deviation; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    center = mean(values)
    return math.sqrt(sum((value - center) ** 2 for value in values) / (len(values) - 1))


def missing_value(column_type: ColumnType) -> Any:
    if column_type.kind == ColumnKind.NUMBER:
        return math.nan
    return None


def warnings_stream(warnings: Iterable[InstantiationWarning | str]) -> RowStream:
    """Single-column ``WarningText`` stream, in emission order."""
    return RowStream.from_rows(WARNINGS_SCHEMA, [(str(warning),) for warning in warnings])


def read_warnings(stream: RowStream, instantiation: int | None = None) -> list[InstantiationWarning]:
    if stream.schema.try_get_column_index(WARNING_COLUMN) is None:
        return []
    return [InstantiationWarning(str(text), instantiation) for text in stream.column_values(WARNING_COLUMN)]


# =============================================================================
# Column unification
# =============================================================================


@dataclass(frozen=True, slots=True)
class _Unified:
    columns: list[Column]
    variable_length: list[str]
    conflicting: list[str]
    partial: dict[str, list[int]]


def _unify_type(types: Sequence[ColumnType]) -> ColumnType | None:
    """Common type for a column seen with ``types``; None when irreconcilable."""
    first = types[0]
    if all(column_type == first for column_type in types):
        return first
    if any(column_type.kind != first.kind for column_type in types):
        return None
    if first.kind == ColumnKind.VECTOR:
        if any(column_type.item_kind != first.item_kind or column_type.size != first.size for column_type in types):
            return None
        return ColumnType.vector(first.size, item_kind=first.item_kind or ColumnKind.NUMBER)
    return ColumnType(first.kind)


def _unify(schemas: Sequence[Schema], *, skip: frozenset[str] = frozenset()) -> _Unified:
    seen: dict[str, list[tuple[int, ColumnType]]] = {}
    for fold, schema in enumerate(schemas):
        for column in schema:
            if column.name in skip:
                continue
            seen.setdefault(column.name, []).append((fold, column.type))

    columns: list[Column] = []
    variable_length: list[str] = []
    conflicting: list[str] = []
    partial: dict[str, list[int]] = {}
    for name, occurrences in seen.items():
        types = [column_type for _fold, column_type in occurrences]
        if any(column_type.is_vector and column_type.size is None for column_type in types):
            variable_length.append(name)
            continue
        unified = _unify_type(types)
        if unified is None:
            if all(column_type.is_vector for column_type in types):
                variable_length.append(name)
            else:
                conflicting.append(name)
            continue
        present = {fold for fold, _type in occurrences}
        if len(present) != len(schemas):
            partial[name] = [fold for fold in range(len(schemas)) if fold not in present]
        columns.append(Column(name, unified))
    return _Unified(columns, variable_length, conflicting, partial)


def _projector(source: Schema, target: Sequence[Column]) -> list[int | None]:
    return [source.try_get_column_index(column.name) for column in target]


def _project(row: Row, positions: Sequence[int | None], target: Sequence[Column]) -> list[Any]:
    return [row[position] if position is not None else missing_value(column.type) for position, column in zip(positions, target, strict=True)]


# =============================================================================
# Overall metrics
# =============================================================================


def _group_rows(stream: RowStream) -> dict[bool, Row]:
    """First unweighted and first weighted row of one fold's metrics."""
    flag = stream.schema.try_get_column_index(IS_WEIGHTED_COLUMN)
    groups: dict[bool, Row] = {}
    for row in stream:
        weighted = bool(row[flag]) if flag is not None else False
        groups.setdefault(weighted, row)
    return groups


def _summarize(column_type: ColumnType, values: Sequence[Any]) -> tuple[Any, Any]:
    if column_type.kind == ColumnKind.NUMBER:
        numbers = [float(value) for value in values]
        if not numbers:
            return math.nan, math.nan
        return mean(numbers), sample_std(numbers)
    if column_type.is_vector and column_type.item_kind == ColumnKind.NUMBER and column_type.size is not None:
        vectors = [tuple(float(item) for item in value) for value in values if value is not None]
        if not vectors:
            return None, None
        slots = list(zip(*vectors, strict=True))
        return tuple(mean(slot) for slot in slots), tuple(sample_std(slot) for slot in slots)
    return None, None


def aggregate_overall_metrics(per_fold: Sequence[RowStream]) -> tuple[RowStream, list[InstantiationWarning]]:
    """Fold-tagged overall metrics with Average and Standard Deviation rows.

    Averages use only the folds that report a metric; a metric missing
    from some folds widens the schema and produces a warning.
    """
    schemas = [stream.schema for stream in per_fold]
    unified = _unify(schemas, skip=frozenset({IS_WEIGHTED_COLUMN, FOLD_INDEX_COLUMN}))
    weighted = any(IS_WEIGHTED_COLUMN in schema for schema in schemas)
    groups = [False, True] if weighted else [False]

    warnings = [
        InstantiationWarning(
            f"Metric column '{name}' is missing from {', '.join(fold_tag(fold) for fold in folds)}; "
            "its Average and Standard Deviation use the remaining folds"
        )
        for name, folds in unified.partial.items()
    ]
    dropped = unified.conflicting + unified.variable_length
    if dropped:
        warnings.append(InstantiationWarning(f"Dropped metric columns with inconsistent types across folds: {', '.join(dropped)}"))

    metric_columns = unified.columns
    lead = [Column(FOLD_INDEX_COLUMN, ColumnType.text())]
    if weighted:
        lead.append(Column(IS_WEIGHTED_COLUMN, ColumnType.boolean()))
    schema = Schema([*lead, *metric_columns])

    # fold_cells[fold][group] -> projected metric cells, or None when the fold has no such row
    fold_cells: list[dict[bool, list[Any] | None]] = []
    for stream in per_fold:
        positions = _projector(stream.schema, metric_columns)
        rows = _group_rows(stream)
        fold_cells.append(
            {group: (_project(rows[group], positions, metric_columns) if group in rows else None) for group in groups}
        )

    def tagged(tag: str, group: bool, cells: Sequence[Any]) -> Row:
        head: list[Any] = [tag, group] if weighted else [tag]
        return tuple([*head, *cells])

    rows: list[Row] = []
    for group in groups:
        averages: list[Any] = []
        deviations: list[Any] = []
        for position, column in enumerate(metric_columns):
            values = []
            for fold, cells in enumerate(fold_cells):
                fold_row = cells[group]
                if fold_row is None or fold in unified.partial.get(column.name, ()):
                    continue
                values.append(fold_row[position])
            average, deviation = _summarize(column.type, values)
            averages.append(average)
            deviations.append(deviation)
        rows.append(tagged(AVERAGE_TAG, group, averages))
        rows.append(tagged(STD_TAG, group, deviations))

    for fold, cells in enumerate(fold_cells):
        for group in groups:
            fold_row = cells[group]
            if fold_row is None:
                fold_row = [missing_value(column.type) for column in metric_columns]
            rows.append(tagged(fold_tag(fold), group, fold_row))

    return RowStream.from_rows(schema, rows), warnings


# =============================================================================
# Per-instance metrics and confusion matrices
# =============================================================================


def concat_folds(per_fold: Sequence[RowStream]) -> tuple[RowStream, list[InstantiationWarning]]:
    """Concatenate per-fold streams with a leading ``Fold Index`` column.

    Vector columns whose length varies (within or across folds) are
    dropped, as are columns whose kinds disagree between folds.
    """
    unified = _unify([stream.schema for stream in per_fold], skip=frozenset({FOLD_INDEX_COLUMN}))
    warnings: list[InstantiationWarning] = []
    if unified.variable_length:
        warnings.append(InstantiationWarning(f"Detected columns of variable length: {', '.join(unified.variable_length)}"))
    if unified.conflicting:
        warnings.append(InstantiationWarning(f"Dropped columns with conflicting types across folds: {', '.join(unified.conflicting)}"))

    columns = unified.columns
    schema = Schema([Column(FOLD_INDEX_COLUMN, ColumnType.text()), *columns])
    parts = [(fold_tag(fold), stream, _projector(stream.schema, columns)) for fold, stream in enumerate(per_fold)]

    def rows() -> Iterator[Row]:
        for tag, stream, positions in parts:
            for row in stream:
                yield (tag, *_project(row, positions, columns))

    return RowStream(schema, rows), warnings


def _remap_counts(stream: RowStream, classes: Sequence[str]) -> RowStream:
    position = stream.schema.index_of("Count")
    own = stream.schema.slot_names("Count") or ()
    targets = [classes.index(name) for name in own]
    count_type = ColumnType.vector(len(classes), slot_names=classes)

    def compute(row: Row) -> tuple[Any]:
        counts = [0.0] * len(classes)
        for target, value in zip(targets, row[position], strict=True):
            counts[target] = value
        return (tuple(counts),)

    return stream.with_computed_columns([Column("Count", count_type)], compute)


def concat_confusion_matrices(per_fold: Sequence[RowStream]) -> RowStream:
    """Concatenate per-fold confusion matrices over the union of their classes."""
    classes: list[str] = []
    for stream in per_fold:
        if "Count" not in stream.schema:
            continue
        for name in stream.schema.slot_names("Count") or ():
            if name not in classes:
                classes.append(name)
    remapped = [_remap_counts(stream, classes) if "Count" in stream.schema else stream for stream in per_fold]
    merged, _warnings = concat_folds(remapped)
    return merged
