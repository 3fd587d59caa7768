# src/tessera/plugins/builtin/trainers.py
"""Built-in trainers.

Deliberately small: full-batch gradient descent for the logistic models,
an averaged perceptron, and weighted ridge regression solved in closed
form. They exist so graphs can be trained and evaluated end to end.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from tessera.contracts.enums import PredictionKind, ValueKind
from tessera.contracts.errors import EntryPointConfigError
from tessera.core.data.rows import Row, RowStream
from tessera.core.data.schema import Column, ColumnType
from tessera.core.models import PredictorModel
from tessera.plugins.base import InputParam, entry_point, optional, produces, required
from tessera.plugins.builtin.common import (
    PREDICTED_LABEL_COLUMN,
    PROBABILITY_COLUMN,
    SCORE_COLUMN,
    binary_label,
    dot,
    feature_reader,
    features,
    is_missing,
    require_column,
    row_weight,
    sigmoid,
    sort_values,
    value_text,
    weight_reader,
)
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

_COMMON_INPUTS: dict[str, InputParam] = {
    "training_data": required(ValueKind.ROW_STREAM),
    "feature_column": optional(ValueKind.SCALAR, "Features"),
    "label_column": optional(ValueKind.SCALAR, "Label"),
    "weight_column": optional(ValueKind.SCALAR),
    "num_threads": optional(ValueKind.SCALAR, description="Accepted for compatibility; training is single-threaded"),
}
_TRAINER_OUTPUTS = {"predictor_model": produces(ValueKind.PREDICTOR_MODEL)}


class TrainerConfig(EntryPointConfig):
    feature_column: str = "Features"
    label_column: str = "Label"
    weight_column: str | None = None
    num_threads: int | None = Field(default=None, ge=1)


@dataclass(frozen=True, slots=True)
class Example:
    features: tuple[float, ...]
    label: Any
    weight: float


def read_examples(stream: RowStream, cfg: TrainerConfig, owner: str) -> list[Example]:
    """Materialize (features, label, weight) triples; rows with missing labels are skipped."""
    schema = stream.schema
    position, is_vector, _width = feature_reader(schema, cfg.feature_column, owner)
    require_column(schema, cfg.label_column, owner)
    label_position = schema.index_of(cfg.label_column)
    weight_position = weight_reader(schema, cfg.weight_column, owner)
    examples = []
    for row in stream:
        label = row[label_position]
        if is_missing(label):
            continue
        examples.append(Example(features(row[position], is_vector), label, row_weight(row, weight_position)))
    if not examples:
        raise EntryPointConfigError(f"{owner}: no training examples with a label in column '{cfg.label_column}'")
    widths = {len(example.features) for example in examples}
    if len(widths) != 1:
        raise EntryPointConfigError(f"{owner}: feature column '{cfg.feature_column}' has rows of different lengths")
    return examples


# =============================================================================
# Predictors
# =============================================================================


@dataclass(frozen=True, slots=True)
class LinearBinaryPredictor:
    """Linear scorer; calibrated predictors also emit a Probability column."""

    weights: tuple[float, ...]
    bias: float
    feature_column: str
    calibrated: bool = True

    @property
    def prediction_kind(self) -> PredictionKind:
        return PredictionKind.BINARY

    def raw_score(self, values: Sequence[float]) -> float:
        return dot(self.weights, values) + self.bias

    def score_stream(self, stream: RowStream) -> RowStream:
        position, is_vector, _width = feature_reader(stream.schema, self.feature_column, "scorer")
        columns = [Column(SCORE_COLUMN, ColumnType.number())]
        if self.calibrated:
            columns.append(Column(PROBABILITY_COLUMN, ColumnType.number()))
        columns.append(Column(PREDICTED_LABEL_COLUMN, ColumnType.boolean()))

        def compute(row: Row) -> list[Any]:
            score = self.raw_score(features(row[position], is_vector))
            if self.calibrated:
                return [score, sigmoid(score), score > 0]
            return [score, score > 0]

        return stream.with_computed_columns(columns, compute)


@dataclass(frozen=True, slots=True)
class SoftmaxPredictor:
    """Multiclass linear scorer; Score holds class probabilities."""

    classes: tuple[Any, ...]
    class_names: tuple[str, ...]
    weights: tuple[tuple[float, ...], ...]
    biases: tuple[float, ...]
    feature_column: str
    label_type: ColumnType

    @property
    def prediction_kind(self) -> PredictionKind:
        return PredictionKind.MULTICLASS

    def probabilities(self, values: Sequence[float]) -> list[float]:
        logits = [dot(weights, values) + bias for weights, bias in zip(self.weights, self.biases, strict=True)]
        return _softmax(logits)

    def score_stream(self, stream: RowStream) -> RowStream:
        position, is_vector, _width = feature_reader(stream.schema, self.feature_column, "scorer")
        columns = [
            Column(SCORE_COLUMN, ColumnType.vector(len(self.classes), slot_names=self.class_names)),
            Column(PREDICTED_LABEL_COLUMN, self.label_type),
        ]

        def compute(row: Row) -> list[Any]:
            probabilities = self.probabilities(features(row[position], is_vector))
            best = max(range(len(probabilities)), key=probabilities.__getitem__)
            return [tuple(probabilities), self.classes[best]]

        return stream.with_computed_columns(columns, compute)


@dataclass(frozen=True, slots=True)
class LinearRegressionPredictor:
    weights: tuple[float, ...]
    bias: float
    feature_column: str

    @property
    def prediction_kind(self) -> PredictionKind:
        return PredictionKind.REGRESSION

    def score_stream(self, stream: RowStream) -> RowStream:
        position, is_vector, _width = feature_reader(stream.schema, self.feature_column, "scorer")
        return stream.with_computed_columns(
            [Column(SCORE_COLUMN, ColumnType.number())],
            lambda row: [dot(self.weights, features(row[position], is_vector)) + self.bias],
        )


def _softmax(logits: Sequence[float]) -> list[float]:
    top = max(logits)
    exps = [math.exp(logit - top) for logit in logits]
    total = sum(exps)
    return [value / total for value in exps]


# =============================================================================
# Binary logistic regression
# =============================================================================


class LogisticRegressionConfig(TrainerConfig):
    max_iterations: int = Field(default=200, ge=1)
    learning_rate: float = Field(default=0.5, gt=0)
    l2_weight: float = Field(default=1e-4, ge=0)


def _fit_logistic(examples: Sequence[Example], labels: Sequence[float], cfg: LogisticRegressionConfig) -> tuple[list[float], float]:
    width = len(examples[0].features)
    weights = [0.0] * width
    bias = 0.0
    total = sum(example.weight for example in examples) or 1.0
    for _ in range(cfg.max_iterations):
        gradient = [0.0] * width
        gradient_bias = 0.0
        for example, label in zip(examples, labels, strict=True):
            error = (sigmoid(dot(weights, example.features) + bias) - label) * example.weight
            for slot, value in enumerate(example.features):
                gradient[slot] += error * value
            gradient_bias += error
        for slot in range(width):
            weights[slot] -= cfg.learning_rate * (gradient[slot] / total + cfg.l2_weight * weights[slot])
        bias -= cfg.learning_rate * gradient_bias / total
    return weights, bias


_LOGISTIC_INPUTS = {
    **_COMMON_INPUTS,
    "max_iterations": optional(ValueKind.SCALAR, 200),
    "learning_rate": optional(ValueKind.SCALAR, 0.5),
    "l2_weight": optional(ValueKind.SCALAR, 1e-4),
}


@entry_point(
    "trainers.logistic_regression_binary_classifier",
    inputs=_LOGISTIC_INPUTS,
    outputs=_TRAINER_OUTPUTS,
)
def logistic_regression_binary_classifier(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Train a calibrated binary logistic regression."""
    cfg = LogisticRegressionConfig.from_inputs(inputs)
    examples = read_examples(inputs["training_data"], cfg, "logistic_regression_binary_classifier")
    labels = [binary_label(example.label) or 0.0 for example in examples]
    weights, bias = _fit_logistic(examples, labels, cfg)
    ctx.logger.debug("trainer_fitted", examples=len(examples), features=len(weights))
    predictor = LinearBinaryPredictor(tuple(weights), bias, cfg.feature_column, calibrated=True)
    return {"predictor_model": PredictorModel(predictor, label_column=cfg.label_column)}


# =============================================================================
# Averaged perceptron
# =============================================================================


class AveragedPerceptronConfig(TrainerConfig):
    num_iterations: int = Field(default=10, ge=1)
    learning_rate: float = Field(default=1.0, gt=0)
    shuffle: bool = True


@entry_point(
    "trainers.averaged_perceptron_binary_classifier",
    inputs={
        **_COMMON_INPUTS,
        "num_iterations": optional(ValueKind.SCALAR, 10),
        "learning_rate": optional(ValueKind.SCALAR, 1.0),
        "shuffle": optional(ValueKind.SCALAR, True),
    },
    outputs=_TRAINER_OUTPUTS,
)
def averaged_perceptron_binary_classifier(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Train an uncalibrated averaged perceptron (no Probability column)."""
    cfg = AveragedPerceptronConfig.from_inputs(inputs)
    examples = read_examples(inputs["training_data"], cfg, "averaged_perceptron_binary_classifier")
    width = len(examples[0].features)
    weights = [0.0] * width
    bias = 0.0
    total_weights = [0.0] * width
    total_bias = 0.0
    steps = 0
    order = list(range(len(examples)))
    rng = ctx.rng() if cfg.shuffle else None
    for _ in range(cfg.num_iterations):
        if rng is not None:
            rng.shuffle(order)
        for index in order:
            example = examples[index]
            sign = 1.0 if binary_label(example.label) else -1.0
            if sign * (dot(weights, example.features) + bias) <= 0:
                step = cfg.learning_rate * sign * example.weight
                for slot, value in enumerate(example.features):
                    weights[slot] += step * value
                bias += step
            for slot in range(width):
                total_weights[slot] += weights[slot]
            total_bias += bias
            steps += 1
    averaged = tuple(value / steps for value in total_weights)
    predictor = LinearBinaryPredictor(averaged, total_bias / steps, cfg.feature_column, calibrated=False)
    return {"predictor_model": PredictorModel(predictor, label_column=cfg.label_column)}


# =============================================================================
# Multiclass logistic regression
# =============================================================================


@entry_point(
    "trainers.logistic_regression_classifier",
    inputs=_LOGISTIC_INPUTS,
    outputs=_TRAINER_OUTPUTS,
)
def logistic_regression_classifier(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Train a multiclass (softmax) logistic regression over the sorted distinct labels."""
    cfg = LogisticRegressionConfig.from_inputs(inputs)
    data: RowStream = inputs["training_data"]
    examples = read_examples(data, cfg, "logistic_regression_classifier")
    label_type = data.schema.type_of(cfg.label_column)
    if label_type.is_vector:
        raise EntryPointConfigError(f"logistic_regression_classifier: label column '{cfg.label_column}' must be scalar")

    classes = sort_values(list(dict.fromkeys(example.label for example in examples)))
    index = {label: position for position, label in enumerate(classes)}
    targets = [index[example.label] for example in examples]
    width = len(examples[0].features)
    weights = [[0.0] * width for _ in classes]
    biases = [0.0] * len(classes)
    total = sum(example.weight for example in examples) or 1.0

    for _ in range(cfg.max_iterations):
        gradients = [[0.0] * width for _ in classes]
        gradient_biases = [0.0] * len(classes)
        for example, target in zip(examples, targets, strict=True):
            logits = [dot(row, example.features) + bias for row, bias in zip(weights, biases, strict=True)]
            probabilities = _softmax(logits)
            for position, probability in enumerate(probabilities):
                error = (probability - (1.0 if position == target else 0.0)) * example.weight
                for slot, value in enumerate(example.features):
                    gradients[position][slot] += error * value
                gradient_biases[position] += error
        for position in range(len(classes)):
            for slot in range(width):
                weights[position][slot] -= cfg.learning_rate * (gradients[position][slot] / total + cfg.l2_weight * weights[position][slot])
            biases[position] -= cfg.learning_rate * gradient_biases[position] / total

    ctx.logger.debug("trainer_fitted", examples=len(examples), classes=len(classes))
    predictor = SoftmaxPredictor(
        classes=tuple(classes),
        class_names=tuple(value_text(label, label_type) for label in classes),
        weights=tuple(tuple(row) for row in weights),
        biases=tuple(biases),
        feature_column=cfg.feature_column,
        label_type=label_type,
    )
    return {"predictor_model": PredictorModel(predictor, label_column=cfg.label_column)}


# =============================================================================
# Ordinary least squares
# =============================================================================


class LeastSquaresConfig(TrainerConfig):
    l2_weight: float = Field(default=1e-6, ge=0)


def solve_linear_system(matrix: list[list[float]], rhs: list[float]) -> list[float]:
    """Gaussian elimination with partial pivoting; singular directions solve to 0."""
    size = len(rhs)
    augmented = [row[:] + [value] for row, value in zip(matrix, rhs, strict=True)]
    for column in range(size):
        pivot = max(range(column, size), key=lambda row: abs(augmented[row][column]))
        if abs(augmented[pivot][column]) < 1e-12:
            continue
        augmented[column], augmented[pivot] = augmented[pivot], augmented[column]
        for row in range(size):
            if row == column:
                continue
            factor = augmented[row][column] / augmented[column][column]
            if factor:
                for position in range(column, size + 1):
                    augmented[row][position] -= factor * augmented[column][position]
    return [
        augmented[row][size] / augmented[row][row] if abs(augmented[row][row]) >= 1e-12 else 0.0
        for row in range(size)
    ]


@entry_point(
    "trainers.ordinary_least_squares_regressor",
    inputs={**_COMMON_INPUTS, "l2_weight": optional(ValueKind.SCALAR, 1e-6)},
    outputs=_TRAINER_OUTPUTS,
)
def ordinary_least_squares_regressor(ctx: EntryPointContext, inputs: dict[str, Any]) -> dict[str, Any]:
    """Fit a weighted ridge regression in closed form."""
    cfg = LeastSquaresConfig.from_inputs(inputs)
    examples = read_examples(inputs["training_data"], cfg, "ordinary_least_squares_regressor")
    width = len(examples[0].features) + 1  # trailing intercept
    gram = [[0.0] * width for _ in range(width)]
    moments = [0.0] * width
    for example in examples:
        row = [*example.features, 1.0]
        target = float(example.label)
        for i in range(width):
            moments[i] += example.weight * row[i] * target
            for j in range(width):
                gram[i][j] += example.weight * row[i] * row[j]
    for i in range(width - 1):
        gram[i][i] += cfg.l2_weight
    solution = solve_linear_system(gram, moments)
    predictor = LinearRegressionPredictor(tuple(solution[:-1]), solution[-1], cfg.feature_column)
    return {"predictor_model": PredictorModel(predictor, label_column=cfg.label_column)}


ENTRY_POINTS = [
    logistic_regression_binary_classifier,
    averaged_perceptron_binary_classifier,
    logistic_regression_classifier,
    ordinary_least_squares_regressor,
]
