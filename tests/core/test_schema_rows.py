# tests/core/test_schema_rows.py
"""Tests for schemas, row-streams and cursors."""

import math

import pytest

from tessera.contracts.enums import ColumnKind
from tessera.contracts.errors import ExecutionStateError
from tessera.core.data.rows import RowStream
from tessera.core.data.schema import Column, ColumnType, Schema
from tests.helpers.streams import NUMBER, TEXT, numbers


class TestColumnType:
    def test_vector_size_inferred_from_slot_names(self) -> None:
        column_type = ColumnType.vector(slot_names=["x", "y"])

        assert column_type.size == 2
        assert column_type.is_known_size_vector
        assert column_type.slot_names == ("x", "y")

    def test_vector_slot_name_count_must_match_size(self) -> None:
        with pytest.raises(ValueError, match="cannot carry 3 slot names"):
            ColumnType.vector(2, slot_names=["a", "b", "c"])

    def test_vector_items_must_be_numbers_or_text(self) -> None:
        with pytest.raises(ValueError, match="numbers or text"):
            ColumnType(ColumnKind.VECTOR, item_kind=ColumnKind.BOOL)

    def test_scalar_cannot_declare_size(self) -> None:
        with pytest.raises(ValueError, match="cannot declare item_kind or size"):
            ColumnType(ColumnKind.NUMBER, size=3)

    def test_describe(self) -> None:
        assert ColumnType.number().describe() == "number"
        assert ColumnType.vector(4).describe() == "vector<number, 4>"
        assert ColumnType.vector(item_kind=ColumnKind.TEXT).describe() == "vector<text, ?>"

    def test_discrete_and_numeric(self) -> None:
        assert ColumnType.key(["a"]).is_discrete
        assert ColumnType.boolean().is_discrete
        assert not ColumnType.vector(2).is_discrete
        assert ColumnType.vector(2).is_numeric
        assert not ColumnType.vector(2, item_kind=ColumnKind.TEXT).is_numeric

    def test_value_count(self) -> None:
        assert ColumnType.text().value_count == 1
        assert ColumnType.vector(5).value_count == 5
        assert ColumnType.vector().value_count is None


class TestSchema:
    def test_preserves_column_order(self) -> None:
        schema = Schema.of(B=NUMBER, A=TEXT)

        assert schema.names == ("B", "A")
        assert schema.index_of("A") == 1
        assert len(schema) == 2

    def test_rejects_duplicate_names(self) -> None:
        with pytest.raises(ValueError, match="Duplicate column name 'A'"):
            Schema([Column("A", NUMBER), Column("A", TEXT)])

    def test_with_column_replaces_in_place(self) -> None:
        schema = Schema.of(A=NUMBER, B=NUMBER, C=NUMBER)

        replaced = schema.with_column(Column("B", TEXT))

        assert replaced.names == ("A", "B", "C")
        assert replaced.type_of("B") == TEXT
        assert schema.type_of("B") == NUMBER

    def test_with_column_appends_new(self) -> None:
        schema = Schema.of(A=NUMBER).with_column(Column("Z", TEXT))

        assert schema.names == ("A", "Z")

    def test_index_of_suggests_close_names(self) -> None:
        schema = Schema.of(Features=NUMBER, Label=NUMBER)

        with pytest.raises(KeyError, match="Did you mean: Features"):
            schema.index_of("Feature")

    def test_try_get_column_index(self) -> None:
        schema = Schema.of(A=NUMBER)

        assert schema.try_get_column_index("A") == 0
        assert schema.try_get_column_index("missing") is None
        assert "A" in schema
        assert "missing" not in schema

    def test_slot_names(self) -> None:
        schema = Schema.of(Score=ColumnType.vector(slot_names=["a", "b"]), X=NUMBER)

        assert schema.slot_names("Score") == ("a", "b")
        assert schema.slot_names("X") is None

    def test_without(self) -> None:
        schema = Schema.of(A=NUMBER, B=NUMBER, C=NUMBER)

        assert schema.without(["B"]).names == ("A", "C")

    def test_equality_is_structural(self) -> None:
        assert Schema.of(A=NUMBER) == Schema.of(A=NUMBER)
        assert Schema.of(A=NUMBER) != Schema.of(A=TEXT)


class TestRowStream:
    def test_from_rows_rejects_wrong_width(self) -> None:
        with pytest.raises(ValueError, match="Row 1 has 1 values, schema has 2 columns"):
            RowStream.from_rows(Schema.of(A=NUMBER, B=NUMBER), [(1.0, 2.0), (3.0,)])

    def test_from_records_fills_absent_keys_with_none(self) -> None:
        stream = RowStream.from_records(Schema.of(A=NUMBER, B=TEXT), [{"A": 1.0}, {"B": "x"}])

        assert list(stream) == [(1.0, None), (None, "x")]

    def test_is_reiterable(self) -> None:
        stream = numbers([1, 2, 3])

        assert list(stream) == list(stream)
        assert stream.count_rows() == 3

    def test_derived_streams_are_lazy(self) -> None:
        calls = []

        def source() -> list[tuple[float]]:
            calls.append(1)
            return [(1.0,), (2.0,)]

        stream = RowStream(Schema.of(X=NUMBER), source)
        filtered = stream.select_rows(lambda index, row: row[0] > 1)
        computed = filtered.with_computed_columns([Column("Y", NUMBER)], lambda row: [row[0] * 10])

        assert calls == []
        assert computed.to_records() == [{"X": 2.0, "Y": 20.0}]
        assert len(calls) == 1

    def test_select_rows_passes_row_index(self) -> None:
        stream = numbers([10, 20, 30, 40])

        odd = stream.select_rows(lambda index, row: index % 2 == 1)

        assert list(odd.column_values("X")) == [20.0, 40.0]

    def test_with_computed_columns_replaces_existing(self) -> None:
        stream = numbers([1, 2])

        doubled = stream.with_computed_columns([Column("X", NUMBER)], lambda row: [row[0] * 2])

        assert doubled.schema.names == ("X",)
        assert list(doubled.column_values("X")) == [2.0, 4.0]

    def test_map_rows(self) -> None:
        stream = numbers([1, 2])

        mapped = stream.map_rows(Schema.of(Name=TEXT), lambda row: (f"row{int(row[0])}",))

        assert mapped.to_records() == [{"Name": "row1"}, {"Name": "row2"}]

    def test_select_columns(self) -> None:
        stream = RowStream.from_rows(Schema.of(A=NUMBER, B=TEXT, C=NUMBER), [(1.0, "x", 2.0)])

        assert stream.select_columns(["C", "A"]).to_records() == [{"C": 2.0, "A": 1.0}]

    def test_empty(self) -> None:
        stream = RowStream.empty()

        assert stream.schema.names == ()
        assert stream.count_rows() == 0


class TestCursor:
    def test_walks_rows_in_order(self) -> None:
        stream = numbers([1, 2])
        seen = []

        with stream.cursor() as cursor:
            assert cursor.position == -1
            while cursor.move_next():
                seen.append((cursor.position, cursor.get("X")))

        assert seen == [(0, 1.0), (1, 2.0)]

    def test_getter_reads_current_row(self) -> None:
        stream = RowStream.from_rows(Schema.of(A=NUMBER, B=TEXT), [(1.0, "x"), (2.0, "y")])
        cursor = stream.cursor()
        getter = cursor.get_getter("B")

        cursor.move_next()
        first = getter()
        cursor.move_next()

        assert first == "x"
        assert getter() == "y"
        assert cursor.get(0) == 2.0

    def test_get_before_move_next_fails(self) -> None:
        cursor = numbers([1]).cursor()

        with pytest.raises(ExecutionStateError, match="call move_next"):
            cursor.get("X")

    def test_exhausted_cursor_stays_exhausted(self) -> None:
        cursor = numbers([1]).cursor()

        assert cursor.move_next()
        assert not cursor.move_next()
        assert not cursor.move_next()
        with pytest.raises(ExecutionStateError):
            cursor.get("X")

    def test_close_stops_iteration(self) -> None:
        cursor = numbers([1, 2, 3]).cursor()
        cursor.move_next()

        cursor.close()

        assert not cursor.move_next()

    def test_unknown_column(self) -> None:
        cursor = numbers([1]).cursor()

        with pytest.raises(KeyError):
            cursor.get_getter("missing")

    def test_nan_cells_pass_through(self) -> None:
        stream = numbers([math.nan])

        with stream.cursor() as cursor:
            cursor.move_next()
            assert math.isnan(cursor.get("X"))
