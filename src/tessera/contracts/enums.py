"""Kinds and statuses used across subsystem boundaries."""

from enum import StrEnum


class ValueKind(StrEnum):
    """Declared type of a Variable or entry-point parameter.

    Compatibility is exact: a ``scalar`` parameter never accepts a
    ``vector`` Variable and vice versa. Vectors may narrow their elements
    with an ``item_kind``.
    """

    SCALAR = "scalar"
    VECTOR = "vector"
    ROW_STREAM = "row_stream"
    PREDICTOR_MODEL = "predictor_model"
    TRANSFORM_MODEL = "transform_model"
    GRAPH = "graph"
    FILE = "file"


class ColumnKind(StrEnum):
    """Type of a row-stream column."""

    NUMBER = "number"
    TEXT = "text"
    BOOL = "bool"
    KEY = "key"
    VECTOR = "vector"


class PredictionKind(StrEnum):
    """Learning task a predictor was trained for.

    Selects the scorer output columns and the evaluator used by the
    cross-validation and train/test macros.
    """

    BINARY = "binary"
    MULTICLASS = "multiclass"
    REGRESSION = "regression"
    RANKING = "ranking"


class RunStatus(StrEnum):
    """Lifecycle of an Experiment."""

    BUILDING = "building"
    COMPILED = "compiled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
