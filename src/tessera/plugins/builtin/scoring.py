# src/tessera/plugins/builtin/scoring.py
"""Model combination and dataset scoring."""

from __future__ import annotations

from typing import Any

from tessera.contracts.enums import ValueKind
from tessera.core.data.rows import RowStream
from tessera.core.models import PredictorModel, TransformModel
from tessera.plugins.base import entry_point, optional, produces, required
from tessera.plugins.context import EntryPointContext


@entry_point(
    "transforms.model_combiner",
    inputs={
        "transform_models": optional(ValueKind.VECTOR, (), item_kind=ValueKind.TRANSFORM_MODEL),
        "model": required(ValueKind.PREDICTOR_MODEL),
    },
    outputs={"predictor_model": produces(ValueKind.PREDICTOR_MODEL)},
)
def model_combiner(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Prefix a predictor model with transform models, in order.

    The combined model applies the transforms to raw data before the
    predictor's own transforms, so it scores data shaped like the input of
    the first transform.
    """
    model: PredictorModel = inputs["model"]
    transforms: list[TransformModel] = list(inputs["transform_models"] or ())
    return {"predictor_model": model.with_transforms(TransformModel.chain(transforms))}


@entry_point(
    "transforms.dataset_scorer",
    inputs={
        "data": required(ValueKind.ROW_STREAM),
        "predictor_model": required(ValueKind.PREDICTOR_MODEL),
    },
    outputs={
        "scored_data": produces(ValueKind.ROW_STREAM),
        "scoring_transform": produces(ValueKind.TRANSFORM_MODEL),
    },
)
def dataset_scorer(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Score a dataset with a predictor model (lazily)."""
    model: PredictorModel = inputs["predictor_model"]
    data: RowStream = inputs["data"]
    return {
        "scored_data": model.score(data),
        "scoring_transform": TransformModel.of("dataset_scorer", model.score),
    }


ENTRY_POINTS = [model_combiner, dataset_scorer]
