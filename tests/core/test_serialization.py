# tests/core/test_serialization.py
"""Tests for the dict (YAML/JSON) form of graphs."""

import pytest
import yaml

from tessera.contracts.enums import ValueKind
from tessera.contracts.errors import GraphBuildError, TemplateError, UnknownEntryPointError
from tessera.core.canonical import stable_hash
from tessera.core.dag.compiler import compile_graph
from tessera.core.dag.graph import Graph, Subgraph
from tessera.plugins.manager import EntryPointRegistry


def _cv_graph(registry: EntryPointRegistry) -> Graph:
    template = Graph(registry)
    norm = template.add("transforms.min_max_normalizer", node_id="norm", column=["Features"])
    train = template.add("trainers.logistic_regression_binary_classifier", node_id="train", training_data=norm["output_data"])
    graph = Graph(registry)
    data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
    graph.add(
        "models.cross_validator",
        node_id="cv",
        data=data,
        nodes=Subgraph(template, {"data": norm.inputs["data"]}, {"predictor_model": train["predictor_model"]}),
        num_folds=3,
        stratification_column="Label",
    )
    return graph


class TestGraphToDict:
    def test_layout(self, registry: EntryPointRegistry) -> None:
        graph = Graph(registry)
        data = graph.declare_input(ValueKind.ROW_STREAM, name="data")
        graph.add("transforms.row_range_filter", node_id="filter", data=data, column="X", min=0.5)

        assert graph.to_dict() == {
            "inputs": [{"id": "data", "kind": "row_stream", "name": "data"}],
            "nodes": [
                {
                    "id": "filter",
                    "kind": "transforms.row_range_filter",
                    "inputs": {"data": {"$var": "data"}, "column": "X", "min": 0.5},
                }
            ],
        }

    def test_subgraph_encoding(self, registry: EntryPointRegistry) -> None:
        encoded = _cv_graph(registry).to_dict()["nodes"][0]["inputs"]["nodes"]["$subgraph"]

        assert encoded["inputs"] == {"data": "norm.data"}
        assert encoded["outputs"] == {"predictor_model": "train.predictor_model"}
        assert [node["id"] for node in encoded["graph"]["nodes"]] == ["norm", "train"]

    def test_round_trip(self, registry: EntryPointRegistry) -> None:
        original = _cv_graph(registry).to_dict()

        rebuilt = Graph.from_dict(original, registry)

        assert rebuilt.to_dict() == original
        assert rebuilt.fingerprint() == stable_hash(original)

    def test_round_trip_through_yaml(self, registry: EntryPointRegistry) -> None:
        original = _cv_graph(registry).to_dict()

        rebuilt = Graph.from_dict(yaml.safe_load(yaml.safe_dump(original)), registry)

        compiled = compile_graph(rebuilt, bound=rebuilt.external_variables())
        assert compiled.order == ("cv",)


class TestFingerprint:
    def test_equal_graphs_share_a_fingerprint(self, registry: EntryPointRegistry) -> None:
        assert _cv_graph(registry).fingerprint() == _cv_graph(registry).fingerprint()

    def test_added_node_changes_fingerprint(self, registry: EntryPointRegistry) -> None:
        graph = _cv_graph(registry)
        before = graph.fingerprint()

        graph.add("transforms.no_operation", node_id="extra", data=graph.find_input("data"))

        assert graph.fingerprint() != before
        assert len(before) == 64


class TestGraphFromDict:
    def test_forward_references(self, registry: EntryPointRegistry) -> None:
        document = {
            "inputs": [{"id": "data", "kind": "row_stream"}],
            "nodes": [
                {"id": "second", "kind": "transforms.no_operation", "inputs": {"data": {"$var": "first.output_data"}}},
                {"id": "first", "kind": "transforms.no_operation", "inputs": {"data": {"$var": "data"}}},
            ],
        }

        graph = Graph.from_dict(document, registry)

        assert [node.id for node in graph.nodes] == ["second", "first"]
        assert compile_graph(graph, bound=graph.external_variables()).order == ("first", "second")

    def test_auto_ids_skip_declared_ids(self, registry: EntryPointRegistry) -> None:
        document = {
            "nodes": [
                {"kind": "transforms.no_operation"},
                {"id": "no_operation_1", "kind": "transforms.no_operation"},
                {"kind": "transforms.no_operation"},
            ]
        }

        graph = Graph.from_dict(document, registry)

        assert [node.id for node in graph.nodes] == ["no_operation_0", "no_operation_1", "no_operation_2"]

    def test_subgraph_inferred_when_inputs_omitted(self, registry: EntryPointRegistry) -> None:
        document = {
            "inputs": [{"id": "data", "kind": "row_stream"}],
            "nodes": [
                {
                    "id": "cv",
                    "kind": "models.cross_validator",
                    "inputs": {
                        "data": {"$var": "data"},
                        "nodes": {
                            "$subgraph": {
                                "graph": {"nodes": [{"id": "train", "kind": "trainers.logistic_regression_binary_classifier"}]}
                            }
                        },
                    },
                }
            ],
        }

        graph = Graph.from_dict(document, registry)

        template = graph.node("cv").inputs["nodes"]
        assert isinstance(template, Subgraph)
        assert template.inputs["data"].id == "train.training_data"
        assert template.outputs["predictor_model"].id == "train.predictor_model"

    def test_subgraph_with_unknown_variable(self, registry: EntryPointRegistry) -> None:
        document = {
            "nodes": [
                {
                    "id": "cv",
                    "kind": "models.cross_validator",
                    "inputs": {
                        "nodes": {
                            "$subgraph": {
                                "graph": {"nodes": [{"id": "train", "kind": "trainers.logistic_regression_binary_classifier"}]},
                                "inputs": {"data": "missing"},
                            }
                        }
                    },
                }
            ]
        }

        with pytest.raises(TemplateError, match="missing"):
            Graph.from_dict(document, registry)

    def test_literal_mappings_are_kept(self, registry: EntryPointRegistry) -> None:
        document = {
            "nodes": [
                {
                    "id": "concat",
                    "kind": "transforms.column_concatenator",
                    "inputs": {"column": [{"name": "Features", "source": ["A", "B"]}]},
                }
            ]
        }

        graph = Graph.from_dict(document, registry)

        assert graph.node("concat").inputs["column"] == [{"name": "Features", "source": ["A", "B"]}]

    def test_unknown_top_level_keys(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(GraphBuildError, match="Unknown graph document keys: edges"):
            Graph.from_dict({"nodes": [], "edges": []}, registry)

    def test_node_without_kind(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(GraphBuildError, match="Node entry 0"):
            Graph.from_dict({"nodes": [{"id": "x"}]}, registry)

    def test_unknown_kind(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(UnknownEntryPointError):
            Graph.from_dict({"nodes": [{"kind": "trainers.does_not_exist"}]}, registry)

    def test_unknown_parameter(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(GraphBuildError, match="has no input 'bogus'"):
            Graph.from_dict({"nodes": [{"kind": "transforms.no_operation", "inputs": {"bogus": 1}}]}, registry)

    def test_invalid_input_kind(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(GraphBuildError, match="Invalid graph input"):
            Graph.from_dict({"inputs": [{"id": "x", "kind": "dataframe"}]}, registry)

    def test_duplicate_variable(self, registry: EntryPointRegistry) -> None:
        document = {"inputs": [{"id": "x", "kind": "scalar"}, {"id": "x", "kind": "scalar"}]}

        with pytest.raises(GraphBuildError, match="declared twice"):
            Graph.from_dict(document, registry)

    def test_not_a_mapping(self, registry: EntryPointRegistry) -> None:
        with pytest.raises(GraphBuildError, match="must be a mapping"):
            Graph.from_dict(["nodes"], registry)  # type: ignore[arg-type]
