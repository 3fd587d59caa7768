# src/tessera/engine/macros/cross_validation.py
"""Cross-validation macro.

The template is trained once per fold on the other folds' rows; the
fold's own rows are scored with the trained model and evaluated. Metrics
of all folds are merged into single streams tagged "Fold 0" ... "Fold k-1".
With num_folds=1 the single fold trains and evaluates on all of the data.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import Field

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import InstantiationWarning
from tessera.core.dag.graph import Subgraph
from tessera.core.data.rows import RowStream
from tessera.core.models import PredictorModel, TransformModel
from tessera.engine.macros.aggregation import (
    aggregate_overall_metrics,
    concat_confusion_matrices,
    concat_folds,
    read_warnings,
    warnings_stream,
)
from tessera.engine.macros.base import (
    EvaluationConfig,
    execute_instantiations,
    prepare_instantiation,
)
from tessera.engine.macros.partition import assign_folds, split_fold
from tessera.plugins.base import entry_point, optional, produces, required
from tessera.plugins.context import EntryPointContext

slog = structlog.get_logger(__name__)

HELD_OUT_INPUT = "test_data"


class CrossValidatorConfig(EvaluationConfig):
    num_folds: int | None = None
    stratification_column: str | None = Field(default=None, min_length=1)


@entry_point(
    "models.cross_validator",
    inputs={
        "data": required(ValueKind.ROW_STREAM, description="Data to split into folds"),
        "nodes": required(ValueKind.GRAPH, description="Training template: data -> predictor_model"),
        "transform_model": optional(ValueKind.TRANSFORM_MODEL, description="Prefixed to every fold's predictor model"),
        "num_folds": optional(ValueKind.SCALAR),
        "kind": optional(ValueKind.SCALAR, "binary"),
        "label_column": optional(ValueKind.SCALAR, "Label"),
        "weight_column": optional(ValueKind.SCALAR),
        "group_column": optional(ValueKind.SCALAR),
        "name_column": optional(ValueKind.SCALAR),
        "stratification_column": optional(ValueKind.SCALAR),
    },
    outputs={
        "predictor_model": produces(ValueKind.VECTOR, item_kind=ValueKind.PREDICTOR_MODEL),
        "overall_metrics": produces(ValueKind.ROW_STREAM),
        "per_instance_metrics": produces(ValueKind.ROW_STREAM),
        "confusion_matrix": produces(ValueKind.ROW_STREAM),
        "warnings": produces(ValueKind.ROW_STREAM),
    },
    macro=True,
    template_inputs=("data",),
    template_outputs=("predictor_model",),
)
def cross_validator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Train and evaluate a template on k folds of the data."""
    cfg = CrossValidatorConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    template: Subgraph = inputs["nodes"]
    transform_model: TransformModel | None = inputs["transform_model"]
    num_folds = cfg.num_folds if cfg.num_folds is not None else ctx.settings.macro.default_num_folds

    folds = assign_folds(
        data,
        num_folds,
        ctx.rng("folds"),
        stratification_column=cfg.stratification_column,
        node_id=ctx.node_id,
    )
    options = cfg.evaluator_options()

    prepared = []
    for fold in range(num_folds):
        if num_folds == 1:
            # A single fold has no held-out rows; it trains and evaluates on all of the data
            train, test = data, data
        else:
            train, test = split_fold(data, folds, fold)
        instantiation = prepare_instantiation(template, fold, f"{ctx.node_id}/fold_{fold}", {"data": train})
        held_out = instantiation.add_input(HELD_OUT_INPUT, ValueKind.ROW_STREAM, test)
        instantiation.add_evaluation(cfg.evaluator, held_out, step="evaluation", options=options)
        prepared.append(instantiation)

    results = execute_instantiations(ctx, prepared)

    models: list[PredictorModel] = [result["predictor_model"] for result in results]
    if transform_model is not None:
        models = [model.with_transforms(transform_model) for model in models]

    warnings: list[InstantiationWarning] = []
    for fold, result in enumerate(results):
        warnings.extend(read_warnings(result["warnings"], fold))
    overall, overall_warnings = aggregate_overall_metrics([result["overall_metrics"] for result in results])
    per_instance, instance_warnings = concat_folds([result["per_instance_metrics"] for result in results])
    warnings.extend(overall_warnings)
    warnings.extend(instance_warnings)

    slog.info("cross_validation_completed", node_id=ctx.node_id, num_folds=num_folds, warning_count=len(warnings))
    return {
        "predictor_model": models,
        "overall_metrics": overall,
        "per_instance_metrics": per_instance,
        "confusion_matrix": concat_confusion_matrices([result["confusion_matrix"] for result in results]),
        "warnings": warnings_stream(warnings),
    }
