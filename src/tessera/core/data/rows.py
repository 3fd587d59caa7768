# src/tessera/core/data/rows.py
"""Pull-based row-streams.

A RowStream is a schema plus a re-iterable row source. Nothing is
materialized up front: derived streams (filters, computed columns,
concatenations) wrap their parent's source in a generator, and a Cursor
receives a row only when it advances.

Cell values by column kind: number -> float (NaN when missing), text ->
str, bool -> bool, key -> int (None when missing), vector -> tuple.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any

from tessera.contracts.errors import ExecutionStateError
from tessera.core.data.schema import Column, Schema

type Row = tuple[Any, ...]
type RowSource = Callable[[], Iterable[Row]]


class RowStream:
    """Schema-described, lazily evaluated sequence of rows."""

    __slots__ = ("_schema", "_source")

    def __init__(self, schema: Schema, source: RowSource) -> None:
        self._schema = schema
        self._source = source

    @classmethod
    def from_rows(cls, schema: Schema, rows: Iterable[Sequence[Any]]) -> RowStream:
        """Materialize rows given positionally in schema order."""
        width = len(schema)
        frozen: list[Row] = []
        for position, row in enumerate(rows):
            if len(row) != width:
                raise ValueError(f"Row {position} has {len(row)} values, schema has {width} columns")
            frozen.append(tuple(row))
        data = tuple(frozen)
        return cls(schema, lambda: data)

    @classmethod
    def from_records(cls, schema: Schema, records: Iterable[Mapping[str, Any]]) -> RowStream:
        """Materialize rows given as mappings; absent keys become None."""
        names = schema.names
        return cls.from_rows(schema, ([record.get(name) for name in names] for record in records))

    @classmethod
    def empty(cls, schema: Schema | None = None) -> RowStream:
        return cls(schema if schema is not None else Schema(), tuple)

    @property
    def schema(self) -> Schema:
        return self._schema

    def __iter__(self) -> Iterator[Row]:
        return iter(self._source())

    def __repr__(self) -> str:
        return f"RowStream({self._schema!r})"

    def cursor(self) -> Cursor:
        """Open a cursor positioned before the first row."""
        return Cursor(self)

    # === Reading helpers ===

    def iter_records(self) -> Iterator[dict[str, Any]]:
        names = self._schema.names
        for row in self:
            yield dict(zip(names, row, strict=True))

    def to_records(self) -> list[dict[str, Any]]:
        """Materialize the stream as a list of dicts."""
        return list(self.iter_records())

    def column_values(self, name: str) -> Iterator[Any]:
        position = self._schema.index_of(name)
        for row in self:
            yield row[position]

    def count_rows(self) -> int:
        return sum(1 for _ in self)

    # === Derived streams (lazy) ===

    def select_rows(self, keep: Callable[[int, Row], bool]) -> RowStream:
        """Keep rows for which ``keep(row_index, row)`` is true."""
        source = self._source

        def rows() -> Iterator[Row]:
            for index, row in enumerate(source()):
                if keep(index, row):
                    yield row

        return RowStream(self._schema, rows)

    def map_rows(self, schema: Schema, transform: Callable[[Row], Row]) -> RowStream:
        source = self._source

        def rows() -> Iterator[Row]:
            for row in source():
                yield transform(row)

        return RowStream(schema, rows)

    def with_computed_columns(
        self,
        columns: Sequence[Column],
        compute: Callable[[Row], Sequence[Any]],
    ) -> RowStream:
        """Add (or replace) columns whose values are computed per row.

        ``compute`` receives the parent row and returns one value per entry
        of ``columns``, in order.
        """
        schema = self._schema.with_columns(columns)
        width = len(schema)
        positions = [schema.index_of(column.name) for column in columns]
        source = self._source

        def rows() -> Iterator[Row]:
            for row in source():
                values = compute(row)
                out = list(row)
                out.extend([None] * (width - len(out)))
                for position, value in zip(positions, values, strict=True):
                    out[position] = value
                yield tuple(out)

        return RowStream(schema, rows)

    def select_columns(self, names: Sequence[str]) -> RowStream:
        positions = [self._schema.index_of(name) for name in names]
        schema = Schema(self._schema.column(name) for name in names)
        return self.map_rows(schema, lambda row: tuple(row[p] for p in positions))


class Cursor:
    """Forward-only cursor over a RowStream.

    Usage:
        with stream.cursor() as cursor:
            auc = cursor.get_getter("AUC")
            while cursor.move_next():
                print(auc())
    """

    __slots__ = ("_schema", "_iterator", "_row", "_position")

    def __init__(self, stream: RowStream) -> None:
        self._schema = stream.schema
        self._iterator: Iterator[Row] | None = iter(stream)
        self._row: Row | None = None
        self._position = -1

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def position(self) -> int:
        """Zero-based index of the current row; -1 before the first move."""
        return self._position

    def move_next(self) -> bool:
        """Advance to the next row. Returns False once the stream is exhausted."""
        if self._iterator is None:
            return False
        try:
            self._row = next(self._iterator)
        except StopIteration:
            self._row = None
            self._iterator = None
            return False
        self._position += 1
        return True

    def get(self, column: str | int) -> Any:
        """Value of ``column`` (name or position) in the current row."""
        position = column if isinstance(column, int) else self._schema.index_of(column)
        return self._current()[position]

    def get_getter(self, column: str | int) -> Callable[[], Any]:
        """Return a zero-argument getter bound to ``column``.

        The column is resolved once; each call reads the current row.
        """
        position = column if isinstance(column, int) else self._schema.index_of(column)

        def getter() -> Any:
            return self._current()[position]

        return getter

    def _current(self) -> Row:
        if self._row is None:
            raise ExecutionStateError("Cursor is not positioned on a row; call move_next() first")
        return self._row

    def close(self) -> None:
        iterator = self._iterator
        self._iterator = None
        self._row = None
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> Cursor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
