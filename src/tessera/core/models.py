# src/tessera/core/models.py
"""Trained-state values passed between nodes.

Both model types are immutable once produced. Downstream nodes receive
them by reference; combining models builds new objects and never copies
the fitted state.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from tessera.contracts.enums import PredictionKind
from tessera.core.data.rows import RowStream

type StreamTransform = Callable[[RowStream], RowStream]


@dataclass(frozen=True, slots=True)
class TransformModel:
    """Replayable chain of fitted row-stream transforms.

    Applying the model to new data reproduces what the producing
    transforms did to their training data, using the state fitted there.
    """

    steps: tuple[StreamTransform, ...] = ()
    names: tuple[str, ...] = ()

    @classmethod
    def identity(cls) -> TransformModel:
        return cls()

    @classmethod
    def of(cls, name: str, step: StreamTransform) -> TransformModel:
        return cls((step,), (name,))

    @classmethod
    def chain(cls, models: Sequence[TransformModel]) -> TransformModel:
        steps: list[StreamTransform] = []
        names: list[str] = []
        for model in models:
            steps.extend(model.steps)
            names.extend(model.names)
        return cls(tuple(steps), tuple(names))

    def then(self, other: TransformModel) -> TransformModel:
        return TransformModel.chain([self, other])

    def apply(self, stream: RowStream) -> RowStream:
        for step in self.steps:
            stream = step(stream)
        return stream

    def __len__(self) -> int:
        return len(self.steps)


@runtime_checkable
class Predictor(Protocol):
    """Scoring function produced by a trainer."""

    @property
    def prediction_kind(self) -> PredictionKind: ...

    def score_stream(self, stream: RowStream) -> RowStream:
        """Append score columns to ``stream`` (lazily)."""
        ...


@dataclass(frozen=True, slots=True)
class PredictorModel:
    """Predictor plus the transforms its input must go through first."""

    predictor: Predictor
    transform_model: TransformModel = field(default_factory=TransformModel.identity)
    label_column: str = "Label"

    @property
    def prediction_kind(self) -> PredictionKind:
        return self.predictor.prediction_kind

    def with_transforms(self, prefix: TransformModel) -> PredictorModel:
        """Return a model that applies ``prefix`` before this model's own transforms."""
        return PredictorModel(self.predictor, prefix.then(self.transform_model), self.label_column)

    def score(self, stream: RowStream) -> RowStream:
        return self.predictor.score_stream(self.transform_model.apply(stream))
