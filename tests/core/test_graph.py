# tests/core/test_graph.py
"""Tests for graph building, cloning and template inference."""

import pytest

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import GraphBuildError, TemplateError, UnknownEntryPointError
from tessera.core.dag.graph import Graph, Subgraph
from tessera.core.dag.models import Variable
from tessera.plugins.manager import EntryPointRegistry


@pytest.fixture
def graph(registry: EntryPointRegistry) -> Graph:
    return Graph(registry)


class TestDeclareInput:
    def test_named_input(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        assert data.id == "data"
        assert data.name == "data"
        assert data.is_external
        assert graph.owns(data)

    def test_anonymous_inputs_get_sequential_ids(self, graph: Graph) -> None:
        first = graph.declare_input(ValueKind.SCALAR)
        second = graph.declare_input(ValueKind.SCALAR)

        assert (first.id, second.id) == ("input_0", "input_1")

    def test_duplicate_name_rejected(self, graph: Graph) -> None:
        graph.declare_input(ValueKind.ROW_STREAM, name="data")

        with pytest.raises(GraphBuildError, match="already declared"):
            graph.declare_input(ValueKind.ROW_STREAM, name="data")

    def test_invalid_name_rejected(self, graph: Graph) -> None:
        with pytest.raises(GraphBuildError, match="Invalid input name"):
            graph.declare_input(ValueKind.ROW_STREAM, name="my data")

    def test_find_input_by_name(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        assert graph.find_input("data") is data

    def test_find_input_unknown(self, graph: Graph) -> None:
        graph.declare_input(ValueKind.ROW_STREAM, name="data")

        with pytest.raises(KeyError, match="inputs: data"):
            graph.find_input("other")


class TestAdd:
    def test_outputs_are_declared_with_node_prefix(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        handle = graph.add("transforms.no_operation", node_id="noop", data=data)

        assert set(handle.outputs) == {"output_data", "model"}
        assert handle["output_data"].id == "noop.output_data"
        assert handle["output_data"].producer == "noop"
        assert handle["model"].kind == ValueKind.TRANSFORM_MODEL
        assert handle.inputs["data"] is data

    def test_auto_generated_ids(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        first = graph.add("transforms.no_operation", data=data)
        second = graph.add("transforms.no_operation", data=first["output_data"])

        assert (first.id, second.id) == ("no_operation_0", "no_operation_1")

    def test_omitted_required_input_becomes_placeholder(self, graph: Graph) -> None:
        handle = graph.add("transforms.no_operation", node_id="noop")

        placeholder = handle.inputs["data"]
        assert placeholder.id == "noop.data"
        assert placeholder.is_external
        assert placeholder.kind == ValueKind.ROW_STREAM
        assert placeholder in graph.external_variables()

    def test_omitted_optional_input_is_left_out(self, graph: Graph) -> None:
        handle = graph.add("transforms.random_number_generator", node_id="rng")

        assert "column" not in handle.node.inputs

    def test_unknown_kind_suggests_close_matches(self, graph: Graph) -> None:
        with pytest.raises(UnknownEntryPointError) as exc_info:
            graph.add("transforms.no_operaton")

        assert "transforms.no_operation" in exc_info.value.suggestions

    def test_unknown_parameter(self, graph: Graph) -> None:
        with pytest.raises(GraphBuildError, match="Did you mean: data"):
            graph.add("transforms.no_operation", dta=graph.declare_input(ValueKind.ROW_STREAM))

    def test_duplicate_node_id(self, graph: Graph) -> None:
        graph.add("transforms.no_operation", node_id="noop")

        with pytest.raises(GraphBuildError, match="Duplicate node id 'noop'"):
            graph.add("transforms.no_operation", node_id="noop")

    def test_invalid_node_id(self, graph: Graph) -> None:
        with pytest.raises(GraphBuildError, match="Invalid node id"):
            graph.add("transforms.no_operation", node_id="a/b")

    def test_foreign_variable_rejected(self, graph: Graph, registry: EntryPointRegistry) -> None:
        other = Graph(registry)
        foreign = other.declare_input(ValueKind.ROW_STREAM, name="data")

        with pytest.raises(GraphBuildError, match="not declared by this graph"):
            graph.add("transforms.no_operation", data=foreign)

    def test_lookalike_variable_rejected(self, graph: Graph) -> None:
        graph.declare_input(ValueKind.ROW_STREAM, name="data")
        lookalike = Variable("data", ValueKind.ROW_STREAM, None, None, "data")

        assert not graph.owns(lookalike)
        with pytest.raises(GraphBuildError):
            graph.add("transforms.no_operation", data=lookalike)

    def test_mutations_bump_version(self, graph: Graph) -> None:
        start = graph.version
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        after_input = graph.version
        graph.add("transforms.no_operation", data=data)

        assert start < after_input < graph.version

    def test_node_lookup(self, graph: Graph) -> None:
        graph.add("transforms.no_operation", node_id="noop")

        assert graph.node("noop").kind == "transforms.no_operation"
        with pytest.raises(KeyError, match="no node 'other'"):
            graph.node("other")

    def test_missing_output_name(self, graph: Graph) -> None:
        handle = graph.add("transforms.no_operation", node_id="noop")

        with pytest.raises(KeyError, match="has no output 'scored_data'"):
            handle["scored_data"]


class TestClone:
    def test_prefixes_nodes_and_variables(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        noop = graph.add("transforms.no_operation", node_id="noop", data=data)

        clone, var_map = graph.clone("cv/fold_0")

        assert [node.id for node in clone.nodes] == ["cv/fold_0/noop"]
        copied = var_map[noop["output_data"].id]
        assert copied.id == "cv/fold_0/noop.output_data"
        assert copied.producer == "cv/fold_0/noop"
        assert clone.owns(copied)
        assert clone.node("cv/fold_0/noop").inputs["data"] is var_map[data.id]

    def test_external_names_survive(self, graph: Graph) -> None:
        graph.declare_input(ValueKind.ROW_STREAM, name="data")

        clone, _var_map = graph.clone("p")

        assert clone.find_input("data").id == "p/data"

    def test_source_graph_untouched(self, graph: Graph) -> None:
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        graph.add("transforms.no_operation", node_id="noop", data=data)
        version = graph.version

        clone, var_map = graph.clone("p")
        clone.add("transforms.no_operation", node_id="extra", data=var_map[data.id])

        assert graph.version == version
        assert graph.node_count == 1
        assert clone.node_count == 2


class TestSubgraphInfer:
    def test_infers_data_and_model(self, graph: Graph) -> None:
        train = graph.add("trainers.logistic_regression_binary_classifier", node_id="train")

        template = Subgraph.infer(graph)

        assert template.inputs["data"] is train.inputs["training_data"]
        assert template.outputs["predictor_model"] is train["predictor_model"]

    def test_requires_single_data_input(self, graph: Graph) -> None:
        graph.add("trainers.logistic_regression_binary_classifier", node_id="a")
        graph.add("trainers.logistic_regression_binary_classifier", node_id="b")

        with pytest.raises(TemplateError, match="exactly one external row_stream"):
            Subgraph.infer(graph)

    def test_requires_a_model(self, graph: Graph) -> None:
        graph.add("transforms.no_operation", node_id="noop")

        with pytest.raises(TemplateError, match="no node produces a predictor_model"):
            Subgraph.infer(graph)

    def test_bare_graph_passed_as_template_is_inferred(self, graph: Graph, registry: EntryPointRegistry) -> None:
        template = Graph(registry)
        template.add("trainers.logistic_regression_binary_classifier", node_id="train")
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        cv = graph.add("models.cross_validator", node_id="cv", data=data, nodes=template)

        embedded = cv.node.inputs["nodes"]
        assert isinstance(embedded, Subgraph)
        assert embedded.graph is template

    def test_bare_graph_without_model_rejected_at_add(self, graph: Graph, registry: EntryPointRegistry) -> None:
        template = Graph(registry)
        template.add("transforms.no_operation", node_id="noop")
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")

        with pytest.raises(TemplateError):
            graph.add("models.cross_validator", data=data, nodes=template)
