# src/tessera/engine/macros/one_versus_all.py
"""One-versus-all macro.

Trains the binary template once per distinct label class, each time on a
copy of the data whose label column is replaced by "is this class", and
combines the k binary models into one multiclass predictor.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import structlog

from tessera.contracts.enums import PredictionKind, ValueKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.dag.graph import Subgraph
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType
from tessera.core.models import PredictorModel
from tessera.engine.macros.base import execute_instantiations, prepare_instantiation
from tessera.plugins.base import entry_point, optional, produces, required
from tessera.plugins.builtin.common import (
    PREDICTED_LABEL_COLUMN,
    PROBABILITY_COLUMN,
    SCORE_COLUMN,
    as_float,
    is_missing,
    require_column,
    sort_values,
    value_text,
)
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

slog = structlog.get_logger(__name__)


class OneVersusAllConfig(EntryPointConfig):
    label_column: str = "Label"
    use_probabilities: bool = True


def binarize_label(stream: RowStream, label_column: str, positive: Any) -> RowStream:
    """Replace ``label_column`` by a bool column: True where the label equals ``positive``."""
    position = stream.schema.index_of(label_column)

    def compute(row: Row) -> list[Any]:
        value = row[position]
        if is_missing(value):
            return [None]
        return [value == positive]

    return stream.with_computed_columns([Column(label_column, ColumnType.boolean())], compute)


@dataclass(frozen=True, slots=True)
class OvaPredictor:
    """Multiclass predictor built from one binary model per class.

    Score is a vector with one slot per class. With ``use_probabilities``
    each binary model's Probability is used and the vector is normalized
    to sum to one; otherwise the raw binary scores are used as they are.
    Every binary model must keep the rows of the stream it scores.
    """

    classes: tuple[Any, ...]
    class_names: tuple[str, ...]
    models: tuple[PredictorModel, ...]
    label_type: ColumnType
    use_probabilities: bool = True

    @property
    def prediction_kind(self) -> PredictionKind:
        return PredictionKind.MULTICLASS

    def _class_scores(self, stream: RowStream) -> Iterator[tuple[float, ...]]:
        scored = [model.score(stream) for model in self.models]
        positions = []
        for part in scored:
            column = PROBABILITY_COLUMN if self.use_probabilities else SCORE_COLUMN
            if column not in part.schema:
                raise ValueError(f"Binary model output has no '{column}' column; columns: {', '.join(part.schema.names)}")
            positions.append(part.schema.index_of(column))
        for rows in zip(*scored, strict=True):
            values = tuple(as_float(row[position]) for row, position in zip(rows, positions, strict=True))
            if self.use_probabilities:
                total = sum(values)
                if total > 0:
                    values = tuple(value / total for value in values)
            yield values

    def score_stream(self, stream: RowStream) -> RowStream:
        schema = stream.schema.with_columns(
            [
                Column(SCORE_COLUMN, ColumnType.vector(len(self.classes), slot_names=self.class_names)),
                Column(PREDICTED_LABEL_COLUMN, self.label_type),
            ]
        )
        score_position = schema.index_of(SCORE_COLUMN)
        label_position = schema.index_of(PREDICTED_LABEL_COLUMN)
        width = len(schema)

        def rows() -> Iterator[Row]:
            for row, scores in zip(stream, self._class_scores(stream), strict=True):
                out = list(row)
                out.extend([None] * (width - len(out)))
                out[score_position] = scores
                out[label_position] = self.classes[max(range(len(scores)), key=scores.__getitem__)]
                yield tuple(out)

        return RowStream(schema, rows)


@entry_point(
    "models.one_versus_all",
    inputs={
        "training_data": required(ValueKind.ROW_STREAM),
        "nodes": required(ValueKind.GRAPH, description="Binary training template: data -> predictor_model"),
        "label_column": optional(ValueKind.SCALAR, "Label"),
        "use_probabilities": optional(ValueKind.SCALAR, True),
    },
    outputs={"predictor_model": produces(ValueKind.PREDICTOR_MODEL)},
    macro=True,
    template_inputs=("data",),
    template_outputs=("predictor_model",),
)
def one_versus_all(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Train one binary model per label class and combine them."""
    cfg = OneVersusAllConfig.from_inputs(inputs)
    data: RowStream = inputs["training_data"]
    template: Subgraph = inputs["nodes"]
    label_type = require_column(data.schema, cfg.label_column, "one_versus_all")
    if label_type.is_vector:
        raise EntryPointConfigError(f"one_versus_all: label column '{cfg.label_column}' must be a scalar column")

    classes = sort_values(list(dict.fromkeys(value for value in data.column_values(cfg.label_column) if not is_missing(value))))
    if not classes:
        raise EntryPointConfigError(f"one_versus_all: label column '{cfg.label_column}' has no values")

    prepared = [
        prepare_instantiation(
            template,
            index,
            f"{ctx.node_id}/class_{index}",
            {"data": binarize_label(data, cfg.label_column, positive)},
        )
        for index, positive in enumerate(classes)
    ]
    results = execute_instantiations(ctx, prepared)
    slog.info("one_versus_all_completed", node_id=ctx.node_id, classes=len(classes))

    predictor = OvaPredictor(
        classes=tuple(classes),
        class_names=tuple(value_text(value, label_type) for value in classes),
        models=tuple(result["predictor_model"] for result in results),
        label_type=label_type,
        use_probabilities=cfg.use_probabilities,
    )
    return {"predictor_model": PredictorModel(predictor, label_column=cfg.label_column)}
