# src/tessera/core/data/schema.py
"""Row-stream schemas: ordered, typed columns with optional slot metadata."""

from __future__ import annotations

import difflib
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from tessera.contracts.enums import ColumnKind

_SCALAR_KINDS = frozenset({ColumnKind.NUMBER, ColumnKind.TEXT, ColumnKind.BOOL, ColumnKind.KEY})


@dataclass(frozen=True, slots=True)
class ColumnType:
    """Type of a single column.

    Vector columns carry an item kind (number or text), a size (None means
    the length varies from row to row) and optional slot names, e.g. the
    class names of a multiclass score vector.
    """

    kind: ColumnKind
    item_kind: ColumnKind | None = None
    size: int | None = None
    slot_names: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.kind == ColumnKind.VECTOR:
            if self.item_kind not in (ColumnKind.NUMBER, ColumnKind.TEXT):
                raise ValueError(f"Vector columns hold numbers or text, got item kind {self.item_kind!r}")
            if self.slot_names is not None and self.size is not None and len(self.slot_names) != self.size:
                raise ValueError(f"Vector of size {self.size} cannot carry {len(self.slot_names)} slot names")
        elif self.item_kind is not None or self.size is not None:
            raise ValueError(f"Scalar column kind {self.kind} cannot declare item_kind or size")

    @classmethod
    def number(cls) -> ColumnType:
        return cls(ColumnKind.NUMBER)

    @classmethod
    def text(cls) -> ColumnType:
        return cls(ColumnKind.TEXT)

    @classmethod
    def boolean(cls) -> ColumnType:
        return cls(ColumnKind.BOOL)

    @classmethod
    def key(cls, slot_names: Sequence[str] | None = None) -> ColumnType:
        """Key column; slot names hold the original value of each key."""
        return cls(ColumnKind.KEY, slot_names=tuple(slot_names) if slot_names is not None else None)

    @classmethod
    def vector(
        cls,
        size: int | None = None,
        *,
        item_kind: ColumnKind = ColumnKind.NUMBER,
        slot_names: Sequence[str] | None = None,
    ) -> ColumnType:
        names = tuple(slot_names) if slot_names is not None else None
        if size is None and names is not None:
            size = len(names)
        return cls(ColumnKind.VECTOR, item_kind=item_kind, size=size, slot_names=names)

    @property
    def is_vector(self) -> bool:
        return self.kind == ColumnKind.VECTOR

    @property
    def is_known_size_vector(self) -> bool:
        return self.kind == ColumnKind.VECTOR and self.size is not None

    @property
    def is_numeric(self) -> bool:
        """Scalar number, or vector of numbers."""
        if self.kind == ColumnKind.VECTOR:
            return self.item_kind == ColumnKind.NUMBER
        return self.kind == ColumnKind.NUMBER

    @property
    def is_discrete(self) -> bool:
        """Scalar column whose distinct values can define strata."""
        return self.kind in _SCALAR_KINDS

    @property
    def value_count(self) -> int | None:
        """Number of values in one cell: 1 for scalars, size for vectors."""
        if self.kind == ColumnKind.VECTOR:
            return self.size
        return 1

    def describe(self) -> str:
        if self.kind == ColumnKind.VECTOR:
            size = "?" if self.size is None else str(self.size)
            return f"vector<{self.item_kind}, {size}>"
        return str(self.kind)


@dataclass(frozen=True, slots=True)
class Column:
    """Named column of a schema."""

    name: str
    type: ColumnType


class Schema:
    """Ordered mapping of column name to column type.

    Column names are unique. Adding a column whose name already exists
    replaces it in place, keeping its position.
    """

    __slots__ = ("_columns", "_index")

    def __init__(self, columns: Iterable[Column] = ()) -> None:
        self._columns: tuple[Column, ...] = tuple(columns)
        self._index: dict[str, int] = {}
        for position, column in enumerate(self._columns):
            if column.name in self._index:
                raise ValueError(f"Duplicate column name '{column.name}' in schema")
            self._index[column.name] = position

    @classmethod
    def of(cls, **types: ColumnType) -> Schema:
        """Build a schema from keyword arguments, preserving argument order."""
        return cls(Column(name, column_type) for name, column_type in types.items())

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._columns

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self._columns)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self._columns == other._columns

    def __hash__(self) -> int:
        return hash(self._columns)

    def __repr__(self) -> str:
        body = ", ".join(f"{c.name}: {c.type.describe()}" for c in self._columns)
        return f"Schema({body})"

    def try_get_column_index(self, name: str) -> int | None:
        """Return the position of a column, or None if absent."""
        return self._index.get(name)

    def index_of(self, name: str) -> int:
        """Return the position of a column.

        Raises:
            KeyError: If the column does not exist (message suggests close names)
        """
        position = self._index.get(name)
        if position is None:
            close = difflib.get_close_matches(name, list(self._index), n=3, cutoff=0.6)
            hint = f" Did you mean: {', '.join(close)}?" if close else ""
            raise KeyError(f"Column '{name}' not found in schema.{hint}")
        return position

    def column(self, name: str) -> Column:
        return self._columns[self.index_of(name)]

    def type_of(self, name: str) -> ColumnType:
        return self.column(name).type

    def get_column_name(self, position: int) -> str:
        return self._columns[position].name

    def slot_names(self, name: str) -> tuple[str, ...] | None:
        """Slot-name metadata of a column, if declared."""
        return self.type_of(name).slot_names

    def with_column(self, column: Column) -> Schema:
        """Return a schema with ``column`` added, or replacing a same-named column."""
        position = self._index.get(column.name)
        if position is None:
            return Schema((*self._columns, column))
        columns = list(self._columns)
        columns[position] = column
        return Schema(columns)

    def with_columns(self, columns: Iterable[Column]) -> Schema:
        schema = self
        for column in columns:
            schema = schema.with_column(column)
        return schema

    def without(self, names: Iterable[str]) -> Schema:
        dropped = set(names)
        return Schema(column for column in self._columns if column.name not in dropped)
