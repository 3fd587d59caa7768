# src/tessera/engine/macros/base.py
"""Shared macro machinery: clone a template, bind, compile, execute.

Each instantiation works on a fresh clone of the template whose node and
Variable ids are prefixed with the instantiation label, so the template
itself is never mutated and ids never collide across instantiations.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import structlog

from tessera.contracts.enums import PredictionKind, ValueKind
from tessera.contracts.errors import GraphValidationError, InvocationError
from tessera.core.dag.compiler import compile_graph
from tessera.core.dag.graph import Graph, Subgraph
from tessera.core.dag.models import NodeHandle, Variable
from tessera.engine.executor import Executor
from tessera.plugins.config_base import EntryPointConfig
from tessera.plugins.context import EntryPointContext

slog = structlog.get_logger(__name__)

EVALUATOR_KINDS: dict[PredictionKind, str] = {
    PredictionKind.BINARY: "models.binary_classification_evaluator",
    PredictionKind.MULTICLASS: "models.classification_evaluator",
    PredictionKind.REGRESSION: "models.regression_evaluator",
    PredictionKind.RANKING: "models.ranking_evaluator",
}
EVALUATION_OUTPUTS = ("overall_metrics", "per_instance_metrics", "confusion_matrix", "warnings")


class EvaluationConfig(EntryPointConfig):
    """Options shared by the macros that score and evaluate their models."""

    kind: PredictionKind = PredictionKind.BINARY
    label_column: str = "Label"
    weight_column: str | None = None
    group_column: str | None = None
    name_column: str | None = None

    @property
    def evaluator(self) -> str:
        return EVALUATOR_KINDS[self.kind]

    def evaluator_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "label_column": self.label_column,
            "weight_column": self.weight_column,
            "name_column": self.name_column,
        }
        if self.kind == PredictionKind.RANKING:
            options["group_column"] = self.group_column
        return options


@dataclass(slots=True)
class PreparedInstantiation:
    """One ready-to-run clone of a macro template.

    ``bindings`` holds values for the clone's external Variables;
    ``outputs`` names the clone Variables to read back after execution.
    Macros may append nodes to ``graph`` before it runs.
    """

    index: int
    label: str
    graph: Graph
    inputs: dict[str, Variable]
    outputs: dict[str, Variable]
    bindings: dict[Variable, Any] = field(default_factory=dict)

    def bind(self, variable: Variable, value: Any) -> None:
        self.bindings[variable] = value

    def add_input(self, name: str, kind: ValueKind, value: Any) -> Variable:
        """Declare and bind an extra external input on the clone."""
        variable = self.graph.declare_input(kind, name=name)
        self.bind(variable, value)
        return variable

    def add_evaluation(
        self,
        evaluator: str,
        data: Variable,
        *,
        step: str,
        options: Mapping[str, Any],
        prefix: str = "",
    ) -> NodeHandle:
        """Score ``data`` with the instantiation's model and evaluate it.

        Appends a dataset_scorer and an ``evaluator`` node and exposes the
        evaluator outputs as ``{prefix}overall_metrics`` and so on.
        Options whose value is None are left to the evaluator defaults.
        """
        scorer = self.graph.add(
            "transforms.dataset_scorer",
            node_id=f"{step}_scorer",
            data=data,
            predictor_model=self.outputs["predictor_model"],
        )
        literals = {name: value for name, value in options.items() if value is not None}
        handle = self.graph.add(
            evaluator,
            node_id=f"{step}_evaluator",
            data=scorer.outputs["scored_data"],
            **literals,
        )
        for name in EVALUATION_OUTPUTS:
            self.outputs[f"{prefix}{name}"] = handle.outputs[name]
        return handle


def prepare_instantiation(subgraph: Subgraph, index: int, label: str, inputs: Mapping[str, Any]) -> PreparedInstantiation:
    """Clone ``subgraph`` under ``label`` and bind its declared inputs."""
    clone, var_map = subgraph.graph.clone(label)
    clone_inputs = {name: var_map[variable.id] for name, variable in subgraph.inputs.items()}
    clone_outputs = {name: var_map[variable.id] for name, variable in subgraph.outputs.items()}
    prepared = PreparedInstantiation(index=index, label=label, graph=clone, inputs=clone_inputs, outputs=clone_outputs)
    for name, value in inputs.items():
        prepared.bind(clone_inputs[name], value)
    return prepared


def execute_instantiations(ctx: EntryPointContext, prepared: Sequence[PreparedInstantiation]) -> list[dict[str, Any]]:
    """Compile and execute every instantiation, returning their outputs in order.

    With ``macro.max_workers > 1`` instantiations run on a thread pool;
    results are still returned in instantiation order.

    Raises:
        InvocationError: Wrapping the first failing instantiation's error,
            tagged with its index
    """
    max_workers = min(ctx.settings.macro.max_workers, max(len(prepared), 1))
    slog.debug("macro_instantiations_started", node_id=ctx.node_id, kind=ctx.kind, count=len(prepared), max_workers=max_workers)

    def run(instantiation: PreparedInstantiation) -> dict[str, Any]:
        return _execute_one(ctx, instantiation)

    if max_workers <= 1:
        results = [run(instantiation) for instantiation in prepared]
    else:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"tessera-{ctx.node_id}") as pool:
            results = list(pool.map(run, prepared))
    slog.debug("macro_instantiations_completed", node_id=ctx.node_id, kind=ctx.kind, count=len(results))
    return results


def _execute_one(ctx: EntryPointContext, instantiation: PreparedInstantiation) -> dict[str, Any]:
    slog.debug("macro_instantiation", node_id=ctx.node_id, instantiation=instantiation.index, label=instantiation.label)
    try:
        compiled = compile_graph(instantiation.graph, ctx.registry, bound=instantiation.bindings.keys())
        values = Executor(ctx.registry, ctx.env).execute(compiled, instantiation.bindings, scope=ctx.scope)
    except (InvocationError, GraphValidationError) as e:
        raise InvocationError(ctx.node_id, ctx.kind, e, instantiation=instantiation.index) from e
    return {name: values.get(variable) for name, variable in instantiation.outputs.items()}
