# src/tessera/core/data/files.py
"""External file handles and CSV export of row-streams."""

from __future__ import annotations

import csv
import math
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from tessera.core.data.rows import RowStream


@dataclass(frozen=True, slots=True)
class FileHandle:
    """Handle to an external file bound to a graph input.

    The file is opened on demand each time a consumer pulls from it, so a
    loader's output stream can be iterated more than once.
    """

    path: Path
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path).expanduser())

    @contextmanager
    def open_text(self) -> Iterator[IO[str]]:
        with self.path.open("r", encoding=self.encoding, newline="") as handle:
            yield handle

    def exists(self) -> bool:
        return self.path.is_file()


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return "NaN"
    if isinstance(value, tuple):
        return " ".join(_format_cell(item) for item in value)
    return str(value)


def write_csv(stream: RowStream, path: Path) -> int:
    """Write a row-stream to CSV with a header row. Returns the row count.

    Vector cells are written space-separated in a single field.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(stream.schema.names)
        for row in stream:
            writer.writerow([_format_cell(value) for value in row])
            count += 1
    return count
