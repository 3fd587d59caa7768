# src/tessera/plugins/builtin/evaluators.py
"""Built-in evaluators.

Every evaluator reads a scored row-stream and produces four streams:
``overall_metrics`` (one row; with a weight column an unweighted and a
weighted row flagged by IsWeighted), ``per_instance_metrics``,
``confusion_matrix`` and ``warnings``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from tessera.contracts.enums import ColumnKind, ValueKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType, Schema
from tessera.engine.macros.aggregation import IS_WEIGHTED_COLUMN, warnings_stream
from tessera.plugins.base import InputParam, entry_point, optional, produces, required
from tessera.plugins.builtin.common import (
    PREDICTED_LABEL_COLUMN,
    PROBABILITY_COLUMN,
    SCORE_COLUMN,
    as_float,
    binary_label,
    is_missing,
    require_column,
    row_weight,
    value_text,
    weight_reader,
)
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

INSTANCE_COLUMN = "Instance"
LOG_LOSS_EPSILON = 1e-15
RANKING_TRUNCATION = 3

_EVALUATOR_INPUTS: dict[str, InputParam] = {
    "data": required(ValueKind.ROW_STREAM, description="Scored data"),
    "label_column": optional(ValueKind.SCALAR, "Label"),
    "weight_column": optional(ValueKind.SCALAR),
    "name_column": optional(ValueKind.SCALAR),
}
_EVALUATOR_OUTPUTS = {
    "overall_metrics": produces(ValueKind.ROW_STREAM),
    "per_instance_metrics": produces(ValueKind.ROW_STREAM),
    "confusion_matrix": produces(ValueKind.ROW_STREAM),
    "warnings": produces(ValueKind.ROW_STREAM),
}


class EvaluatorConfig(EntryPointConfig):
    label_column: str = "Label"
    weight_column: str | None = None
    name_column: str | None = None


@dataclass(frozen=True, slots=True)
class ScoredRow:
    index: int
    label: Any
    weight: float
    row: Row


def _read_scored(stream: RowStream, cfg: EvaluatorConfig, owner: str) -> list[ScoredRow]:
    require_column(stream.schema, cfg.label_column, owner)
    require_column(stream.schema, SCORE_COLUMN, owner)
    label_position = stream.schema.index_of(cfg.label_column)
    weight_position = weight_reader(stream.schema, cfg.weight_column, owner)
    return [
        ScoredRow(index, row[label_position], row_weight(row, weight_position), row)
        for index, row in enumerate(stream)
        if not is_missing(row[label_position])
    ]


def _overall(columns: Sequence[Column], compute: Callable[[bool], Sequence[Any]], weighted: bool) -> RowStream:
    """One metrics row, or (unweighted, weighted) rows with an IsWeighted column."""
    if not weighted:
        return RowStream.from_rows(Schema(columns), [compute(False)])
    schema = Schema([*columns, Column(IS_WEIGHTED_COLUMN, ColumnType.boolean())])
    return RowStream.from_rows(schema, [(*compute(False), False), (*compute(True), True)])


def _instance_columns(stream: RowStream, cfg: EvaluatorConfig) -> tuple[list[Column], Callable[[ScoredRow], list[Any]]]:
    columns: list[Column] = []
    if cfg.name_column is not None:
        require_column(stream.schema, cfg.name_column, "evaluator")
        name_position = stream.schema.index_of(cfg.name_column)
        columns.append(Column(INSTANCE_COLUMN, ColumnType.text()))
        return columns, lambda scored: [value_text(scored.row[name_position])]
    columns.append(Column(INSTANCE_COLUMN, ColumnType.number()))
    return columns, lambda scored: [float(scored.index)]


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else math.nan


def _log_loss(probability: float) -> float:
    return -math.log(max(probability, LOG_LOSS_EPSILON))


# =============================================================================
# Binary classification
# =============================================================================

BINARY_METRICS = (
    "AUC",
    "Accuracy",
    "Positive precision",
    "Positive recall",
    "Negative precision",
    "Negative recall",
    "Log-loss",
    "Log-loss reduction",
    "F1 Score",
)
BINARY_CLASSES = ("positive", "negative")


def area_under_curve(scores: Sequence[float], labels: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted ROC AUC; tied scores count half. NaN without both classes."""
    ordered = sorted(zip(scores, labels, weights, strict=True), key=lambda item: item[0])
    positive_total = sum(weight for _score, label, weight in ordered if label)
    negative_total = sum(weight for _score, label, weight in ordered if not label)
    if positive_total <= 0 or negative_total <= 0:
        return math.nan
    area = 0.0
    negatives_below = 0.0
    position = 0
    while position < len(ordered):
        score = ordered[position][0]
        tied_positive = tied_negative = 0.0
        while position < len(ordered) and ordered[position][0] == score:
            _score, label, weight = ordered[position]
            if label:
                tied_positive += weight
            else:
                tied_negative += weight
            position += 1
        area += tied_positive * (negatives_below + 0.5 * tied_negative)
        negatives_below += tied_negative
    return area / (positive_total * negative_total)


def _binary_entropy(rate: float) -> float:
    if rate <= 0 or rate >= 1:
        return 0.0
    return -(rate * math.log(rate) + (1 - rate) * math.log(1 - rate))


@entry_point(
    "models.binary_classification_evaluator",
    inputs=_EVALUATOR_INPUTS,
    outputs=_EVALUATOR_OUTPUTS,
)
def binary_classification_evaluator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Evaluate binary classifier scores (AUC, accuracy, precision/recall, log-loss)."""
    cfg = EvaluatorConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    owner = "binary_classification_evaluator"
    scored = _read_scored(data, cfg, owner)
    schema = data.schema
    score_position = schema.index_of(SCORE_COLUMN)
    probability_position = schema.try_get_column_index(PROBABILITY_COLUMN)
    predicted_position = schema.try_get_column_index(PREDICTED_LABEL_COLUMN)

    labels = [binary_label(item.label) or 0.0 for item in scored]
    scores = [as_float(item.row[score_position]) for item in scored]
    assigned = [
        bool(item.row[predicted_position]) if predicted_position is not None else score > 0
        for item, score in zip(scored, scores, strict=True)
    ]
    probabilities = [as_float(item.row[probability_position]) if probability_position is not None else math.nan for item in scored]
    losses = [_log_loss(p if label else 1 - p) if not math.isnan(p) else math.nan for p, label in zip(probabilities, labels, strict=True)]

    def compute(weighted: bool) -> list[float]:
        weights = [item.weight if weighted else 1.0 for item in scored]
        tp = sum(w for w, y, a in zip(weights, labels, assigned, strict=True) if y and a)
        fp = sum(w for w, y, a in zip(weights, labels, assigned, strict=True) if not y and a)
        tn = sum(w for w, y, a in zip(weights, labels, assigned, strict=True) if not y and not a)
        fn = sum(w for w, y, a in zip(weights, labels, assigned, strict=True) if y and not a)
        total = tp + fp + tn + fn
        log_loss = _safe_ratio(sum(w * loss for w, loss in zip(weights, losses, strict=True)), total)
        prior = _binary_entropy(_safe_ratio(tp + fn, total)) if total > 0 else math.nan
        precision = _safe_ratio(tp, tp + fp)
        recall = _safe_ratio(tp, tp + fn)
        return [
            area_under_curve(scores, labels, weights),
            _safe_ratio(tp + tn, total),
            precision,
            recall,
            _safe_ratio(tn, tn + fn),
            _safe_ratio(tn, tn + fp),
            log_loss,
            (1 - log_loss / prior) if prior and not math.isnan(log_loss) else math.nan,
            _safe_ratio(2 * precision * recall, precision + recall) if not (math.isnan(precision) or math.isnan(recall)) else math.nan,
        ]

    weighted = cfg.weight_column is not None
    overall = _overall([Column(name, ColumnType.number()) for name in BINARY_METRICS], compute, weighted)

    lead, lead_values = _instance_columns(data, cfg)
    label_type = schema.type_of(cfg.label_column)
    instance_columns = [
        *lead,
        Column("Label", label_type),
        Column(SCORE_COLUMN, ColumnType.number()),
        Column(PROBABILITY_COLUMN, ColumnType.number()),
        Column("Assigned", ColumnType.boolean()),
        Column("Log-loss", ColumnType.number()),
    ]
    per_instance = RowStream.from_rows(
        Schema(instance_columns),
        [
            (*lead_values(item), item.label, score, probability, flag, loss)
            for item, score, probability, flag, loss in zip(scored, scores, probabilities, assigned, losses, strict=True)
        ],
    )

    def confusion(weighted: bool) -> list[Row]:
        counts = {(True, True): 0.0, (True, False): 0.0, (False, True): 0.0, (False, False): 0.0}
        for item, label, flag in zip(scored, labels, assigned, strict=True):
            counts[(bool(label), flag)] += item.weight if weighted else 1.0
        return [
            ("positive", (counts[(True, True)], counts[(True, False)])),
            ("negative", (counts[(False, True)], counts[(False, False)])),
        ]

    confusion_matrix = _confusion_stream(BINARY_CLASSES, confusion, weighted)

    warnings: list[str] = []
    if not any(labels) or all(labels):
        warnings.append("AUC is not defined when the data contains only one class")
    return {
        "overall_metrics": overall,
        "per_instance_metrics": per_instance,
        "confusion_matrix": confusion_matrix,
        "warnings": warnings_stream(warnings),
    }


def _confusion_stream(classes: Sequence[str], rows: Callable[[bool], list[Row]], weighted: bool) -> RowStream:
    columns = [Column("Class", ColumnType.text()), Column("Count", ColumnType.vector(len(classes), slot_names=classes))]
    if not weighted:
        return RowStream.from_rows(Schema(columns), rows(False))
    schema = Schema([*columns, Column(IS_WEIGHTED_COLUMN, ColumnType.boolean())])
    flagged = [(*row, False) for row in rows(False)] + [(*row, True) for row in rows(True)]
    return RowStream.from_rows(schema, flagged)


# =============================================================================
# Multiclass classification
# =============================================================================

MULTICLASS_METRICS = ("Accuracy(micro-avg)", "Accuracy(macro-avg)", "Log-loss", "Log-loss reduction")


def unseen_class_warning(count: int) -> str:
    return (
        f"Found {count} test instances with class values not seen in the training set. "
        "LogLoss is reported higher than usual because of these instances."
    )


@entry_point(
    "models.classification_evaluator",
    inputs=_EVALUATOR_INPUTS,
    outputs=_EVALUATOR_OUTPUTS,
)
def classification_evaluator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Evaluate multiclass scores (micro/macro accuracy, log-loss, confusion matrix)."""
    cfg = EvaluatorConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    owner = "classification_evaluator"
    schema = data.schema
    score_type = require_column(schema, SCORE_COLUMN, owner)
    if not score_type.is_known_size_vector:
        raise EntryPointConfigError(f"{owner}: '{SCORE_COLUMN}' must be a known-size vector of class scores")
    class_names = list(score_type.slot_names or [str(slot) for slot in range(score_type.size or 0)])
    class_index = {name: position for position, name in enumerate(class_names)}
    label_type = schema.type_of(cfg.label_column)
    scored = _read_scored(data, cfg, owner)
    score_position = schema.index_of(SCORE_COLUMN)

    targets: list[int | None] = [class_index.get(value_text(item.label, label_type)) for item in scored]
    scores = [tuple(as_float(value) for value in item.row[score_position]) for item in scored]
    predictions = [max(range(len(row)), key=row.__getitem__) if row else None for row in scores]
    losses = [
        _log_loss(row[target]) if target is not None else _log_loss(0.0)
        for row, target in zip(scores, targets, strict=True)
    ]
    unseen = sum(1 for target in targets if target is None)

    def compute(weighted: bool) -> list[float]:
        weights = [item.weight if weighted else 1.0 for item in scored]
        total = sum(weights)
        correct = sum(w for w, t, p in zip(weights, targets, predictions, strict=True) if t is not None and t == p)
        per_class: dict[str, list[float]] = {}
        for item, w, t, p in zip(scored, weights, targets, predictions, strict=True):
            hits = per_class.setdefault(value_text(item.label, label_type), [0.0, 0.0])
            hits[0] += w if t is not None and t == p else 0.0
            hits[1] += w
        macro = sum(_safe_ratio(hit, count) for hit, count in per_class.values()) / len(per_class) if per_class else math.nan
        log_loss = _safe_ratio(sum(w * loss for w, loss in zip(weights, losses, strict=True)), total)
        prior = -sum((count / total) * math.log(count / total) for _hit, count in per_class.values() if count > 0) if total > 0 else math.nan
        return [
            _safe_ratio(correct, total),
            macro,
            log_loss,
            (1 - log_loss / prior) if prior and not math.isnan(log_loss) else math.nan,
        ]

    weighted = cfg.weight_column is not None
    overall = _overall([Column(name, ColumnType.number()) for name in MULTICLASS_METRICS], compute, weighted)

    lead, lead_values = _instance_columns(data, cfg)
    width = len(class_names)
    instance_schema = Schema(
        [
            *lead,
            Column("Label", label_type),
            Column("Assigned", ColumnType.text()),
            Column("Log-loss", ColumnType.number()),
            Column("SortedScores", ColumnType.vector(width)),
            Column("SortedClasses", ColumnType.vector(width, item_kind=ColumnKind.TEXT)),
        ]
    )
    instance_rows = []
    for item, row, prediction, loss in zip(scored, scores, predictions, losses, strict=True):
        ranking = sorted(range(len(row)), key=lambda slot: (-row[slot], slot))
        instance_rows.append(
            (
                *lead_values(item),
                item.label,
                class_names[prediction] if prediction is not None else "",
                loss,
                tuple(row[slot] for slot in ranking),
                tuple(class_names[slot] for slot in ranking),
            )
        )
    per_instance = RowStream.from_rows(instance_schema, instance_rows)

    def confusion(weighted: bool) -> list[Row]:
        matrix = [[0.0] * width for _ in class_names]
        for item, target, prediction in zip(scored, targets, predictions, strict=True):
            if target is not None and prediction is not None:
                matrix[target][prediction] += item.weight if weighted else 1.0
        return [(name, tuple(counts)) for name, counts in zip(class_names, matrix, strict=True)]

    warnings = [unseen_class_warning(unseen)] if unseen else []
    if unseen:
        ctx.logger.warning("unseen_test_classes", count=unseen)
    return {
        "overall_metrics": overall,
        "per_instance_metrics": per_instance,
        "confusion_matrix": _confusion_stream(class_names, confusion, weighted),
        "warnings": warnings_stream(warnings),
    }


# =============================================================================
# Regression
# =============================================================================

REGRESSION_METRICS = ("L1(avg)", "L2(avg)", "RMS(avg)", "Loss-fn(avg)", "R Squared")


@entry_point(
    "models.regression_evaluator",
    inputs=_EVALUATOR_INPUTS,
    outputs=_EVALUATOR_OUTPUTS,
)
def regression_evaluator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Evaluate regression scores (L1, L2, RMS, R squared)."""
    cfg = EvaluatorConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    scored = _read_scored(data, cfg, "regression_evaluator")
    score_position = data.schema.index_of(SCORE_COLUMN)
    labels = [as_float(item.label) for item in scored]
    scores = [as_float(item.row[score_position]) for item in scored]

    def compute(weighted: bool) -> list[float]:
        weights = [item.weight if weighted else 1.0 for item in scored]
        total = sum(weights)
        l1 = _safe_ratio(sum(w * abs(s - y) for w, s, y in zip(weights, scores, labels, strict=True)), total)
        l2 = _safe_ratio(sum(w * (s - y) ** 2 for w, s, y in zip(weights, scores, labels, strict=True)), total)
        center = _safe_ratio(sum(w * y for w, y in zip(weights, labels, strict=True)), total)
        variance = _safe_ratio(sum(w * (y - center) ** 2 for w, y in zip(weights, labels, strict=True)), total)
        return [l1, l2, math.sqrt(l2) if not math.isnan(l2) else math.nan, l2, 1 - _safe_ratio(l2, variance)]

    overall = _overall([Column(name, ColumnType.number()) for name in REGRESSION_METRICS], compute, cfg.weight_column is not None)
    lead, lead_values = _instance_columns(data, cfg)
    per_instance = RowStream.from_rows(
        Schema(
            [
                *lead,
                Column("Label", ColumnType.number()),
                Column(SCORE_COLUMN, ColumnType.number()),
                Column("L1-loss", ColumnType.number()),
                Column("L2-loss", ColumnType.number()),
            ]
        ),
        [(*lead_values(item), y, s, abs(s - y), (s - y) ** 2) for item, y, s in zip(scored, labels, scores, strict=True)],
    )
    return {
        "overall_metrics": overall,
        "per_instance_metrics": per_instance,
        "confusion_matrix": RowStream.empty(),
        "warnings": warnings_stream([]),
    }


# =============================================================================
# Ranking
# =============================================================================

RANKING_SLOTS = tuple(f"@{position}" for position in range(1, RANKING_TRUNCATION + 1))


class RankingEvaluatorConfig(EvaluatorConfig):
    group_column: str = Field(default="GroupId")


def discounted_gains(relevances: Sequence[float]) -> list[float]:
    """DCG at 1..RANKING_TRUNCATION for relevances in ranked order."""
    gains = []
    running = 0.0
    for position in range(RANKING_TRUNCATION):
        if position < len(relevances):
            running += (2.0 ** relevances[position] - 1.0) / math.log2(position + 2)
        gains.append(running)
    return gains


@entry_point(
    "models.ranking_evaluator",
    inputs={**_EVALUATOR_INPUTS, "group_column": optional(ValueKind.SCALAR, "GroupId")},
    outputs=_EVALUATOR_OUTPUTS,
)
def ranking_evaluator(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Evaluate ranking scores per query group (NDCG and DCG at 1..3)."""
    cfg = RankingEvaluatorConfig.from_inputs(inputs)
    data: RowStream = inputs["data"]
    scored = _read_scored(data, cfg, "ranking_evaluator")
    group_type = require_column(data.schema, cfg.group_column, "ranking_evaluator")
    group_position = data.schema.index_of(cfg.group_column)
    score_position = data.schema.index_of(SCORE_COLUMN)

    groups: dict[str, list[ScoredRow]] = {}
    for item in scored:
        groups.setdefault(value_text(item.row[group_position], group_type), []).append(item)

    per_group: list[tuple[str, float, list[float], list[float]]] = []
    for group, members in groups.items():
        ranked = sorted(members, key=lambda item: -as_float(item.row[score_position]))
        dcg = discounted_gains([as_float(item.label) for item in ranked])
        ideal = discounted_gains(sorted((as_float(item.label) for item in members), reverse=True))
        ndcg = [gain / best if best > 0 else 0.0 for gain, best in zip(dcg, ideal, strict=True)]
        per_group.append((group, members[0].weight, ndcg, dcg))

    def compute(weighted: bool) -> list[tuple[float, ...]]:
        weights = [weight if weighted else 1.0 for _group, weight, _ndcg, _dcg in per_group]
        total = sum(weights)
        ndcg = tuple(_safe_ratio(sum(w * entry[2][slot] for w, entry in zip(weights, per_group, strict=True)), total) for slot in range(RANKING_TRUNCATION))
        dcg = tuple(_safe_ratio(sum(w * entry[3][slot] for w, entry in zip(weights, per_group, strict=True)), total) for slot in range(RANKING_TRUNCATION))
        return [ndcg, dcg]

    metric_type = ColumnType.vector(RANKING_TRUNCATION, slot_names=RANKING_SLOTS)
    overall = _overall([Column("NDCG", metric_type), Column("DCG", metric_type)], compute, cfg.weight_column is not None)
    per_instance = RowStream.from_rows(
        Schema(
            [
                Column(cfg.group_column, ColumnType.text()),
                Column("NDCG", metric_type),
                Column("DCG", metric_type),
            ]
        ),
        [(group, tuple(ndcg), tuple(dcg)) for group, _weight, ndcg, dcg in per_group],
    )
    return {
        "overall_metrics": overall,
        "per_instance_metrics": per_instance,
        "confusion_matrix": RowStream.empty(),
        "warnings": warnings_stream([]),
    }


ENTRY_POINTS = [
    binary_classification_evaluator,
    classification_evaluator,
    regression_evaluator,
    ranking_evaluator,
]
