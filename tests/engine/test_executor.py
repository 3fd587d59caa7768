# tests/engine/test_executor.py
"""Tests for the executor and its value table."""

import pytest

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import (
    ExecutionStateError,
    InvocationError,
    TypeMismatchError,
    UnresolvedInputError,
)
from tessera.core.dag.compiler import compile_graph
from tessera.core.dag.models import Variable
from tessera.core.environment import ExperimentEnvironment
from tessera.engine.executor import Executor, ValueTable
from tests.helpers.streams import numbers


def _execute(env: ExperimentEnvironment, kind: str) -> None:
    graph = env.create_graph()
    data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
    graph.add(kind, node_id="step", data=data)
    compiled = compile_graph(graph, bound=[data])
    Executor(env.registry, env).execute(compiled, {data: numbers([1])})


class TestValueTable:
    def test_set_and_get(self) -> None:
        table = ValueTable()
        variable = Variable("x", ValueKind.SCALAR)

        table.set(variable, 3)

        assert table.get(variable) == 3
        assert variable in table
        assert "x" in table
        assert len(table) == 1

    def test_missing_value(self) -> None:
        with pytest.raises(ExecutionStateError, match="No value has been produced for Variable 'x'"):
            ValueTable().get(Variable("x", ValueKind.SCALAR))


class TestExecute:
    def test_values_flow_between_nodes(self, env: ExperimentEnvironment) -> None:
        graph = env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        norm = graph.add("transforms.min_max_normalizer", data=data, column=["X"])
        noop = graph.add("transforms.no_operation", data=norm["output_data"])
        compiled = compile_graph(graph, bound=[data])

        values = Executor(env.registry, env).execute(compiled, {data: numbers([0, 5, 10])})

        assert list(values.get(noop["output_data"]).column_values("X")) == [0.0, 0.5, 1.0]
        assert len(values.get(norm["model"])) == 1

    def test_defaults_fill_omitted_optional_inputs(self, env: ExperimentEnvironment) -> None:
        graph = env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        rng = graph.add("transforms.random_number_generator", data=data)
        compiled = compile_graph(graph, bound=[data])

        values = Executor(env.registry, env).execute(compiled, {data: numbers([1, 2])})

        assert values.get(rng["output_data"]).schema.names == ("X", "Random")

    def test_missing_binding(self, env: ExperimentEnvironment) -> None:
        graph = env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        graph.add("transforms.no_operation", data=data)
        compiled = compile_graph(graph, bound=[data])

        with pytest.raises(UnresolvedInputError, match="no value was bound"):
            Executor(env.registry, env).execute(compiled, {})

    def test_binding_of_wrong_kind(self, env: ExperimentEnvironment) -> None:
        graph = env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        graph.add("transforms.no_operation", data=data)
        compiled = compile_graph(graph, bound=[data])

        with pytest.raises(TypeMismatchError, match="input 'data'"):
            Executor(env.registry, env).execute(compiled, {data: [1, 2, 3]})

    def test_stale_compilation_rejected(self, env: ExperimentEnvironment) -> None:
        graph = env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        graph.add("transforms.no_operation", data=data)
        compiled = compile_graph(graph, bound=[data])
        graph.add("transforms.no_operation", data=data)

        with pytest.raises(ExecutionStateError, match="modified after compilation"):
            Executor(env.registry, env).execute(compiled, {data: numbers([1])})


class TestNodeFailures:
    def test_exception_wrapped_with_node_identity(self, toy_env: ExperimentEnvironment) -> None:
        with pytest.raises(InvocationError) as exc_info:
            _execute(toy_env, "testing.fail")

        error = exc_info.value
        assert error.node_id == "step"
        assert error.kind == "testing.fail"
        assert isinstance(error.cause, ValueError)
        assert error.instantiation is None
        assert "ValueError: boom" in str(error)

    def test_output_of_wrong_kind(self, toy_env: ExperimentEnvironment) -> None:
        with pytest.raises(InvocationError, match="output 'output_data' should be row_stream"):
            _execute(toy_env, "testing.wrong_output")

    def test_missing_declared_output(self, toy_env: ExperimentEnvironment) -> None:
        with pytest.raises(InvocationError, match="did not produce declared outputs: output_data"):
            _execute(toy_env, "testing.missing_output")

    def test_execution_stops_at_first_failure(self, toy_env: ExperimentEnvironment) -> None:
        graph = toy_env.create_graph()
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        failed = graph.add("testing.fail", node_id="first", data=data)
        graph.add("transforms.no_operation", node_id="second", data=failed["output_data"])
        compiled = compile_graph(graph, bound=[data])

        with pytest.raises(InvocationError) as exc_info:
            Executor(toy_env.registry, toy_env).execute(compiled, {data: numbers([1])})

        assert exc_info.value.node_id == "first"
