# tests/engine/macros/test_partition.py
"""Tests for seeded fold assignment."""

import random
from collections import Counter

import pytest

from tessera.contracts.errors import PartitionError
from tessera.core.data.rows import RowStream
from tessera.core.data.schema import ColumnType, Schema
from tessera.engine.macros.partition import assign_folds, split_fold
from tests.helpers.streams import TEXT, binary_dataset, id_stream


def _labels(values: list[str | None]) -> RowStream:
    return RowStream.from_rows(Schema.of(Label=TEXT), [(value,) for value in values])


class TestAssignFolds:
    def test_fold_sizes_differ_by_at_most_one(self) -> None:
        folds = assign_folds(id_stream(10), 3, random.Random(0))

        sizes = Counter(folds)
        assert [sizes[fold] for fold in range(3)] == [4, 3, 3]

    def test_every_row_assigned(self) -> None:
        folds = assign_folds(id_stream(7), 2, random.Random(0))

        assert len(folds) == 7
        assert set(folds) <= {0, 1}

    def test_same_seed_same_assignment(self) -> None:
        first = assign_folds(id_stream(20), 4, random.Random(42))
        second = assign_folds(id_stream(20), 4, random.Random(42))

        assert first == second

    def test_different_seed_changes_assignment(self) -> None:
        first = assign_folds(id_stream(50), 5, random.Random(1))
        second = assign_folds(id_stream(50), 5, random.Random(2))

        assert first != second

    def test_more_folds_than_rows_leaves_empty_folds(self) -> None:
        folds = assign_folds(id_stream(2), 4, random.Random(0))

        assert sorted(folds) == [0, 1]

    def test_stratification_spreads_each_class(self) -> None:
        stream = _labels(["a"] * 6 + ["b"] * 4)

        folds = assign_folds(stream, 2, random.Random(3), stratification_column="Label")

        per_fold = Counter(folds)
        assert per_fold[0] == per_fold[1] == 5
        labels = list(stream.column_values("Label"))
        for fold in (0, 1):
            members = Counter(label for label, assigned in zip(labels, folds, strict=True) if assigned == fold)
            assert members == {"a": 3, "b": 2}

    def test_stratification_on_bool_column(self) -> None:
        folds = assign_folds(binary_dataset(20), 2, random.Random(0), stratification_column="Label")

        positives = [fold for index, fold in enumerate(folds) if index % 2 == 0]
        assert Counter(positives) == {0: 5, 1: 5}

    def test_missing_values_form_their_own_stratum(self) -> None:
        stream = _labels(["a", None, "a", None])

        folds = assign_folds(stream, 2, random.Random(0), stratification_column="Label")

        assert sorted([folds[1], folds[3]]) == [0, 1]
        assert sorted([folds[0], folds[2]]) == [0, 1]


class TestPartitionErrors:
    def test_num_folds_must_be_positive(self) -> None:
        with pytest.raises(PartitionError, match="num_folds must be at least 1, got 0"):
            assign_folds(id_stream(4), 0, random.Random(0), node_id="cv")

    def test_missing_stratification_column(self) -> None:
        with pytest.raises(PartitionError, match="Node 'cv': Stratification column 'Group' is not in the data"):
            assign_folds(id_stream(4), 2, random.Random(0), stratification_column="Group", node_id="cv")

    def test_vector_stratification_column(self) -> None:
        with pytest.raises(PartitionError, match="must be a discrete scalar column"):
            assign_folds(binary_dataset(4), 2, random.Random(0), stratification_column="Features")


class TestSplitFold:
    def test_train_and_test_are_complementary(self) -> None:
        stream = id_stream(6)
        folds = [0, 1, 0, 1, 0, 1]

        train, test = split_fold(stream, folds, 1)

        assert list(train.column_values("Id")) == [0.0, 2.0, 4.0]
        assert list(test.column_values("Id")) == [1.0, 3.0, 5.0]

    def test_views_keep_schema(self) -> None:
        stream = id_stream(4)

        train, test = split_fold(stream, [0, 0, 1, 1], 0)

        assert train.schema == test.schema == stream.schema
        assert test.schema.type_of("Id") == ColumnType.number()
