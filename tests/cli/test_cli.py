# tests/cli/test_cli.py
"""Tests for the Tessera CLI."""

import re
from pathlib import Path
from typing import Any

import pytest
import yaml
from typer.testing import CliRunner

from tessera.cli import app

# Stderr is mixed into result.output by CliRunner.invoke().
runner = CliRunner()


def _document(**overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "graph": {
            "inputs": [{"id": "train_file", "kind": "file", "name": "train_file"}],
            "nodes": [
                {
                    "id": "loader",
                    "kind": "data.text_loader",
                    "inputs": {
                        "input_file": {"$var": "train_file"},
                        "separator": ",",
                        "has_header": True,
                        "columns": [{"name": "Label", "source": 0}, {"name": "Features", "source": "1-2"}],
                    },
                },
                {
                    "id": "norm",
                    "kind": "transforms.min_max_normalizer",
                    "inputs": {"data": {"$var": "loader.data"}, "column": ["Features"]},
                },
            ],
        },
        "outputs": {"normalized": "norm.output_data"},
    }
    document.update(overrides)
    return document


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "train.csv"
    path.write_text("label,f1,f2\n1,0,10\n0,5,20\n1,10,30\n", encoding="utf-8")
    return path


@pytest.fixture
def graph_file(tmp_path: Path) -> Path:
    path = tmp_path / "graph.yaml"
    path.write_text(yaml.safe_dump(_document()), encoding="utf-8")
    return path


def _write(tmp_path: Path, document: Any) -> Path:
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "tessera version 0.4.0" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "validate", "entry-points"):
            assert command in result.output


class TestEntryPointsCommand:
    def test_lists_kinds_and_marks_macros(self) -> None:
        result = runner.invoke(app, ["entry-points"])

        assert result.exit_code == 0
        assert "data.text_loader" in result.output
        macro_lines = [line for line in result.output.splitlines() if "models.cross_validator" in line]
        assert macro_lines and macro_lines[0].endswith("[macro]")

    def test_prefix_filter(self) -> None:
        result = runner.invoke(app, ["entry-points", "--prefix", "trainers."])

        assert result.exit_code == 0
        assert "trainers.ordinary_least_squares_regressor" in result.output
        assert "transforms." not in result.output

    def test_no_matches(self) -> None:
        result = runner.invoke(app, ["entry-points", "-p", "nothing."])

        assert "(none available)" in result.output


class TestValidateCommand:
    def test_valid_graph(self, graph_file: Path) -> None:
        result = runner.invoke(app, ["validate", str(graph_file)])

        assert result.exit_code == 0
        assert "Graph valid: 2 nodes" in result.output
        assert "  1. loader (data.text_loader)" in result.output
        assert "  2. norm (transforms.min_max_normalizer)" in result.output
        assert re.search(r"Fingerprint: sha256-rfc8785-v1:[0-9a-f]{64}", result.output)

    def test_cyclic_graph(self, tmp_path: Path) -> None:
        document = {
            "graph": {
                "nodes": [
                    {"id": "a", "kind": "transforms.no_operation", "inputs": {"data": {"$var": "b.output_data"}}},
                    {"id": "b", "kind": "transforms.no_operation", "inputs": {"data": {"$var": "a.output_data"}}},
                ]
            }
        }

        result = runner.invoke(app, ["validate", str(_write(tmp_path, document))])

        assert result.exit_code == 1
        assert "Graph error" in result.output
        assert "a, b" in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", str(tmp_path / "absent.yaml")])

        assert result.exit_code == 1
        assert "Graph file not found" in result.output

    def test_unknown_top_level_keys(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", str(_write(tmp_path, _document(extras={})))])

        assert result.exit_code == 1
        assert "unknown top-level keys" in result.output

    def test_document_without_graph(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", str(_write(tmp_path, {"nodes": []}))])

        assert result.exit_code == 1
        assert "must be a mapping with a 'graph' key" in result.output

    def test_output_of_wrong_kind(self, tmp_path: Path) -> None:
        document = _document(outputs={"model": "norm.model"})

        result = runner.invoke(app, ["validate", str(_write(tmp_path, document))])

        assert result.exit_code == 1
        assert "only row_stream outputs can be written" in result.output


class TestRunCommand:
    def test_writes_outputs(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"

        result = runner.invoke(
            app,
            ["run", str(graph_file), "--input", f"train_file={data_file}", "--output-dir", str(out), "--seed", "3"],
        )

        assert result.exit_code == 0, result.output
        assert "Run completed: 1 outputs written" in result.output
        assert "normalized.csv (3 rows)" in result.output
        lines = (out / "normalized.csv").read_text(encoding="utf-8").splitlines()
        assert lines == ["Label,Features", "1.0,0.0 0.0", "0.0,0.5 0.5", "1.0,1.0 1.0"]

    def test_all_row_streams_without_outputs_section(self, tmp_path: Path, data_file: Path) -> None:
        document = _document()
        del document["outputs"]
        out = tmp_path / "out"

        result = runner.invoke(
            app,
            ["run", str(_write(tmp_path, document)), "-i", f"train_file={data_file}", "-o", str(out)],
        )

        assert result.exit_code == 0, result.output
        assert sorted(path.name for path in out.iterdir()) == ["loader.data.csv", "norm.output_data.csv"]

    def test_unbound_input(self, graph_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["run", str(graph_file), "-o", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_bad_input_format(self, graph_file: Path) -> None:
        result = runner.invoke(app, ["run", str(graph_file), "--input", "train_file"])

        assert result.exit_code == 1
        assert "--input expects name=path" in result.output

    def test_unknown_input_name(self, graph_file: Path, data_file: Path) -> None:
        result = runner.invoke(app, ["run", str(graph_file), "--input", f"test_file={data_file}"])

        assert result.exit_code == 1
        assert "test_file" in result.output

    def test_missing_data_file(self, graph_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["run", str(graph_file), "--input", f"train_file={tmp_path / 'absent.csv'}", "-o", str(tmp_path / "out")],
        )

        assert result.exit_code == 1
        assert "Input file not found" in result.output

    def test_settings_file(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        settings = tmp_path / "settings.yaml"
        settings.write_text("seed: 11\nmacro:\n  max_workers: 2\n", encoding="utf-8")

        result = runner.invoke(
            app,
            ["run", str(graph_file), "-i", f"train_file={data_file}", "-o", str(tmp_path / "out"), "-s", str(settings)],
        )

        assert result.exit_code == 0, result.output

    def test_invalid_settings(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        settings = tmp_path / "settings.yaml"
        settings.write_text("macro:\n  max_workers: 0\n", encoding="utf-8")

        result = runner.invoke(app, ["run", str(graph_file), "-i", f"train_file={data_file}", "-s", str(settings)])

        assert result.exit_code == 1
        assert "Configuration errors:" in result.output
        assert "max_workers" in result.output


class TestLoggingSettings:
    def _run(self, graph_file: Path, data_file: Path, tmp_path: Path, settings_text: str, *extra: str, **kwargs: Any):
        settings = tmp_path / "settings.yaml"
        settings.write_text(settings_text, encoding="utf-8")
        return runner.invoke(
            app,
            [*extra, "run", str(graph_file), "-i", f"train_file={data_file}", "-o", str(tmp_path / "out"), "-s", str(settings)],
            **kwargs,
        )

    def test_debug_level_from_settings_file(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        result = self._run(graph_file, data_file, tmp_path, "logging:\n  level: DEBUG\n")

        assert result.exit_code == 0, result.output
        assert "node_started" in result.output
        assert "graph_compiled" in result.output

    def test_default_level_hides_debug_events(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        result = self._run(graph_file, data_file, tmp_path, "seed: 5\n")

        assert result.exit_code == 0, result.output
        assert "node_started" not in result.output

    def test_json_output_from_settings_file(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        result = self._run(graph_file, data_file, tmp_path, "logging:\n  level: DEBUG\n  json_output: true\n")

        assert result.exit_code == 0, result.output
        assert '"event": "node_started"' in result.output

    def test_environment_override(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        result = self._run(graph_file, data_file, tmp_path, "seed: 5\n", env={"TESSERA_LOGGING__LEVEL": "DEBUG"})

        assert result.exit_code == 0, result.output
        assert "node_started" in result.output

    def test_verbose_flag_wins_over_settings_level(self, graph_file: Path, data_file: Path, tmp_path: Path) -> None:
        result = self._run(graph_file, data_file, tmp_path, "logging:\n  level: ERROR\n", "--verbose")

        assert result.exit_code == 0, result.output
        assert "node_started" in result.output
