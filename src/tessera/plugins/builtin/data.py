# src/tessera/plugins/builtin/data.py
"""Delimited-text loader.

Reads a FileHandle lazily: the file is opened and parsed each time the
output stream is iterated, using csv.reader so quoted fields work.

Column sources are zero-based field indexes. A single index yields a
scalar column; several indexes (or "a-b" ranges, inclusive) yield a
vector column:

    columns:
      - {name: Label, source: 0}
      - {name: Features, source: "1-4"}
      - {name: Category, source: 5, kind: text}
"""

from __future__ import annotations

import csv
import math
from collections.abc import Iterator
from typing import Any, Literal

from pydantic import Field, field_validator

from tessera.contracts.enums import ColumnKind, ValueKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.data.files import FileHandle
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType, Schema
from tessera.plugins.base import entry_point, optional, produces, required
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

_TRUE_VALUES = frozenset({"1", "true", "yes", "y", "t"})
_MISSING_VALUES = frozenset({"", "?", "nan", "na", "null"})


class LoaderColumn(EntryPointConfig):
    """One output column of the text loader."""

    name: str
    source: int | str | list[int | str]
    kind: Literal["number", "text", "bool"] = "number"

    def indexes(self) -> list[int]:
        parts = self.source if isinstance(self.source, list) else [self.source]
        indexes: list[int] = []
        for part in parts:
            if isinstance(part, int):
                indexes.append(part)
                continue
            low, sep, high = part.partition("-")
            try:
                if sep:
                    indexes.extend(range(int(low), int(high) + 1))
                else:
                    indexes.append(int(low))
            except ValueError as e:
                raise EntryPointConfigError(f"Column '{self.name}': invalid source range '{part}'") from e
        if not indexes or any(index < 0 for index in indexes):
            raise EntryPointConfigError(f"Column '{self.name}': source indexes must be non-negative")
        return indexes

    def is_vector(self) -> bool:
        return isinstance(self.source, list) or (isinstance(self.source, str) and "-" in self.source)


class TextLoaderConfig(EntryPointConfig):
    """Options of data.text_loader."""

    separator: str = Field(default="\t", min_length=1)
    has_header: bool = False
    columns: list[LoaderColumn] | None = None

    @field_validator("separator")
    @classmethod
    def _expand_escapes(cls, value: str) -> str:
        return {"tab": "\t", "\\t": "\t", "comma": ",", "space": " "}.get(value, value)


def parse_number(text: str) -> float:
    cleaned = text.strip()
    if cleaned.lower() in _MISSING_VALUES:
        return math.nan
    try:
        return float(cleaned)
    except ValueError:
        return math.nan


def parse_bool(text: str) -> bool:
    return text.strip().lower() in _TRUE_VALUES


_PARSERS = {"number": parse_number, "text": str, "bool": parse_bool}
_COLUMN_KINDS = {"number": ColumnKind.NUMBER, "text": ColumnKind.TEXT, "bool": ColumnKind.BOOL}


def _read_header(handle: FileHandle, separator: str) -> list[str]:
    with handle.open_text() as stream:
        for fields in csv.reader(stream, delimiter=separator):
            return [field.strip() for field in fields]
    return []


@entry_point(
    "data.text_loader",
    inputs={
        "input_file": required(ValueKind.FILE, description="Delimited text file"),
        "separator": optional(ValueKind.SCALAR, "\t"),
        "has_header": optional(ValueKind.SCALAR, False),
        "columns": optional(ValueKind.VECTOR, None, description="Column specs: name, source, kind"),
    },
    outputs={"data": produces(ValueKind.ROW_STREAM)},
)
def text_loader(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Load a delimited text file as a row-stream."""
    handle: FileHandle = inputs["input_file"]
    cfg = TextLoaderConfig.from_inputs(inputs)
    if not handle.exists():
        raise FileNotFoundError(f"Input file not found: {handle.path}")

    specs = cfg.columns
    if specs is None:
        header = _read_header(handle, cfg.separator)
        names = header if cfg.has_header else [f"Column{index}" for index in range(len(header))]
        specs = [LoaderColumn(name=name, source=index) for index, name in enumerate(names)]

    plan: list[tuple[list[int], bool, Any]] = []
    columns: list[Column] = []
    for spec in specs:
        indexes = spec.indexes()
        kind = _COLUMN_KINDS[spec.kind]
        if spec.is_vector():
            if kind == ColumnKind.BOOL:
                raise EntryPointConfigError(f"Column '{spec.name}': vector columns hold numbers or text")
            columns.append(Column(spec.name, ColumnType.vector(len(indexes), item_kind=kind)))
        else:
            columns.append(Column(spec.name, ColumnType(kind)))
        plan.append((indexes, spec.is_vector(), _PARSERS[spec.kind]))
    schema = Schema(columns)
    separator = cfg.separator
    skip_header = cfg.has_header

    def rows() -> Iterator[Row]:
        with handle.open_text() as stream:
            reader = csv.reader(stream, delimiter=separator)
            if skip_header:
                next(reader, None)
            for fields in reader:
                if not fields or all(not field.strip() for field in fields):
                    continue
                values: list[Any] = []
                for indexes, is_vector, parse in plan:
                    cells = [parse(fields[index]) if index < len(fields) else parse("") for index in indexes]
                    values.append(tuple(cells) if is_vector else cells[0])
                yield tuple(values)

    ctx.logger.debug("text_loader_opened", path=str(handle.path), columns=list(schema.names))
    return {"data": RowStream(schema, rows)}


ENTRY_POINTS = [text_loader]
