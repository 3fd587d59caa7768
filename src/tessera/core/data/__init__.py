"""Row-stream data model: schemas, cursors and file handles."""

from tessera.core.data.files import FileHandle, write_csv
from tessera.core.data.rows import Cursor, Row, RowStream
from tessera.core.data.schema import Column, ColumnType, Schema

__all__ = [
    "Column",
    "ColumnType",
    "Cursor",
    "FileHandle",
    "Row",
    "RowStream",
    "Schema",
    "write_csv",
]
