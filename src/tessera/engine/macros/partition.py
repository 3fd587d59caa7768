# src/tessera/engine/macros/partition.py
"""Seeded fold assignment for cross-validation.

Rows are assigned round-robin over a seeded permutation, so fold sizes
differ by at most one. With a stratification column the permutation is
taken within each stratum (strata in order of first appearance) and the
round-robin position carries over from one stratum to the next, which
spreads every distinct value across folds as evenly as possible.
"""

from __future__ import annotations

import math
import random
from collections import Counter
from typing import Any

import structlog

from tessera.contracts.errors import PartitionError
from tessera.core.data.rows import RowStream

slog = structlog.get_logger(__name__)


def _stratum_key(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def assign_folds(
    stream: RowStream,
    num_folds: int,
    rng: random.Random,
    *,
    stratification_column: str | None = None,
    node_id: str | None = None,
) -> list[int]:
    """Fold index for every row of ``stream``, by row position.

    Raises:
        PartitionError: If ``num_folds`` < 1, or the stratification column
            is absent or not a discrete scalar column
    """
    if num_folds < 1:
        raise PartitionError(node_id, f"num_folds must be at least 1, got {num_folds}")

    if stratification_column is None:
        row_count = stream.count_rows()
        strata: list[list[int]] = [list(range(row_count))]
    else:
        position = stream.schema.try_get_column_index(stratification_column)
        if position is None:
            raise PartitionError(node_id, f"Stratification column '{stratification_column}' is not in the data")
        column_type = stream.schema.type_of(stratification_column)
        if not column_type.is_discrete:
            raise PartitionError(
                node_id,
                f"Stratification column '{stratification_column}' must be a discrete scalar column, got {column_type.describe()}",
            )
        grouped: dict[Any, list[int]] = {}
        row_count = 0
        for index, value in enumerate(stream.column_values(stratification_column)):
            grouped.setdefault(_stratum_key(value), []).append(index)
            row_count += 1
        strata = list(grouped.values())

    folds = [0] * row_count
    offset = 0
    for members in strata:
        order = list(members)
        rng.shuffle(order)
        for step, row_index in enumerate(order):
            folds[row_index] = (offset + step) % num_folds
        offset += len(order)

    sizes = Counter(folds)
    slog.debug(
        "folds_assigned",
        node_id=node_id,
        num_folds=num_folds,
        strata=len(strata),
        fold_sizes=[sizes.get(fold, 0) for fold in range(num_folds)],
    )
    return folds


def split_fold(stream: RowStream, folds: list[int], fold: int) -> tuple[RowStream, RowStream]:
    """Lazy (train, test) views of ``stream`` for one fold."""
    assignment = tuple(folds)
    train = stream.select_rows(lambda index, _row: assignment[index] != fold)
    test = stream.select_rows(lambda index, _row: assignment[index] == fold)
    return train, test
