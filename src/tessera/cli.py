# src/tessera/cli.py
"""Tessera Command Line Interface.

Graph documents are YAML (or JSON) files:

    graph:
      inputs:
        - {id: train_file, kind: file, name: train_file}
      nodes:
        - id: loader
          kind: data.text_loader
          inputs: {input_file: {$var: train_file}}
    outputs:
      loaded: loader.data

``graph`` is the serialized Graph; ``outputs`` maps output names to the
Variable ids whose row-streams ``tessera run`` writes as CSV. Without
``outputs`` every row-stream produced by a top-level node is written.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
import yaml
from pydantic import ValidationError

from tessera import __version__
from tessera.contracts import TesseraError, ValueKind
from tessera.core.config import LoggingSettings, TesseraSettings, load_settings

if TYPE_CHECKING:
    from tessera.core.dag.graph import Graph
    from tessera.core.dag.models import Variable
    from tessera.plugins.manager import EntryPointRegistry

__all__ = [
    "app",
]

# Module-level singleton for the entry-point registry
_registry_cache: EntryPointRegistry | None = None


def _get_registry() -> EntryPointRegistry:
    """Get the registry with all built-in entry points (singleton)."""
    global _registry_cache

    from tessera.plugins.manager import EntryPointRegistry

    if _registry_cache is None:
        _registry_cache = EntryPointRegistry.with_builtins()
    return _registry_cache


app = typer.Typer(
    name="tessera",
    help="Tessera: typed operation graphs for data processing and model training.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"tessera version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """Tessera: typed operation graphs for data processing and model training."""
    from tessera.core.logging import configure_logging

    ctx.obj = {"verbose": verbose, "json_logs": json_logs}
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")


# === Graph documents ===


def _read_document(path: Path) -> dict[str, Any]:
    """Load a graph document, raising typer.Exit(1) with a message on failure."""
    try:
        with path.open(encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except FileNotFoundError:
        typer.echo(f"Error: Graph file not found: {path}", err=True)
        raise typer.Exit(1) from None
    except yaml.YAMLError as e:
        typer.echo(f"YAML syntax error in {path}: {e}", err=True)
        raise typer.Exit(1) from None
    if not isinstance(document, dict) or "graph" not in document:
        typer.echo(f"Error: {path} must be a mapping with a 'graph' key", err=True)
        raise typer.Exit(1)
    unknown = set(document) - {"graph", "outputs"}
    if unknown:
        typer.echo(f"Error: unknown top-level keys in {path}: {', '.join(sorted(unknown))}", err=True)
        raise typer.Exit(1)
    return document


def _output_variables(graph: Graph, outputs: Any) -> dict[str, Variable]:
    """Resolve the document's ``outputs`` section to row-stream Variables."""
    if outputs is None:
        return {
            variable.id: variable
            for node in graph.nodes
            for variable in node.outputs.values()
            if variable.kind == ValueKind.ROW_STREAM
        }
    if not isinstance(outputs, dict):
        raise TesseraError("'outputs' must map output names to Variable ids")
    resolved: dict[str, Variable] = {}
    for name, variable_id in outputs.items():
        try:
            variable = graph.variable(str(variable_id))
        except KeyError:
            raise TesseraError(f"Output '{name}' references unknown Variable '{variable_id}'") from None
        if variable.kind != ValueKind.ROW_STREAM:
            raise TesseraError(f"Output '{name}' references Variable '{variable_id}' of kind {variable.kind}; only row_stream outputs can be written")
        resolved[str(name)] = variable
    return resolved


def _parse_inputs(values: list[str]) -> dict[str, Path]:
    parsed: dict[str, Path] = {}
    for value in values:
        name, sep, path = value.partition("=")
        if not sep or not name or not path:
            typer.echo(f"Error: --input expects name=path, got '{value}'", err=True)
            raise typer.Exit(1)
        parsed[name] = Path(path)
    return parsed


def _apply_logging_settings(ctx: typer.Context, logging_settings: LoggingSettings) -> None:
    """Reconfigure logging from a settings file; --verbose and --json-logs take precedence."""
    from tessera.core.logging import configure_logging

    flags = ctx.find_root().obj or {}
    configure_logging(
        json_output=flags.get("json_logs", False) or logging_settings.json_output,
        level="DEBUG" if flags.get("verbose", False) else logging_settings.level,
    )


def _load_run_settings(settings: Path | None) -> TesseraSettings:
    if settings is None:
        return TesseraSettings()
    try:
        return load_settings(settings)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


# === Commands ===


@app.command("entry-points")
def entry_points(
    prefix: str | None = typer.Option(
        None,
        "--prefix",
        "-p",
        help="Only list kinds starting with this prefix (e.g. 'trainers.').",
    ),
) -> None:
    """List registered entry-point kinds."""
    registry = _get_registry()
    specs = [spec for spec in registry if prefix is None or spec.kind.startswith(prefix)]
    if not specs:
        typer.echo("(none available)")
        return
    for spec in specs:
        marker = " [macro]" if spec.is_macro else ""
        typer.echo(f"  {spec.kind:45} - {spec.description}{marker}")


@app.command()
def validate(
    graph_file: Path = typer.Argument(..., help="Path to a graph YAML/JSON document."),
) -> None:
    """Compile a graph document and print its execution order."""
    from tessera.core.canonical import CANONICAL_VERSION
    from tessera.core.dag.compiler import compile_graph
    from tessera.core.dag.graph import Graph

    document = _read_document(graph_file)
    registry = _get_registry()
    try:
        graph = Graph.from_dict(document["graph"], registry)
        compiled = compile_graph(graph, registry, bound=graph.external_variables())
        _output_variables(graph, document.get("outputs"))
    except TesseraError as e:
        typer.echo(f"Graph error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"Graph valid: {len(compiled.order)} nodes")
    for position, node in enumerate(compiled.nodes, start=1):
        typer.echo(f"  {position}. {node.id} ({node.kind})")
    typer.echo(f"Fingerprint: {CANONICAL_VERSION}:{graph.fingerprint()}")


@app.command()
def run(
    ctx: typer.Context,
    graph_file: Path = typer.Argument(..., help="Path to a graph YAML/JSON document."),
    inputs: list[str] = typer.Option(
        [],
        "--input",
        "-i",
        help="Bind a named external file input: name=path (repeatable).",
    ),
    output_dir: Path = typer.Option(
        Path("tessera_output"),
        "--output-dir",
        "-o",
        help="Directory the row-stream outputs are written to as CSV.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        help="Override the experiment seed from settings.",
    ),
) -> None:
    """Execute a graph document and write its row-stream outputs."""
    from tessera.core.data.files import FileHandle, write_csv
    from tessera.core.dag.graph import Graph
    from tessera.core.environment import ExperimentEnvironment
    from tessera.engine.experiment import Experiment

    document = _read_document(graph_file)
    bound_files = _parse_inputs(inputs)
    run_settings = _load_run_settings(settings)
    if settings is not None:
        _apply_logging_settings(ctx, run_settings.logging)
    registry = _get_registry()

    try:
        env = ExperimentEnvironment(seed, settings=run_settings, registry=registry)
        graph = Graph.from_dict(document["graph"], registry)
        targets = _output_variables(graph, document.get("outputs"))
        experiment = Experiment(env, graph)
        for name, path in bound_files.items():
            try:
                variable = graph.find_input(name)
            except KeyError as e:
                raise TesseraError(e.args[0]) from None
            if variable.kind != ValueKind.FILE:
                raise TesseraError(f"Input '{name}' is of kind {variable.kind}; only file inputs can be bound from the command line")
            experiment.set_input(variable, FileHandle(path))
        experiment.compile()
        experiment.run()
        written = {name: write_csv(experiment.get_output(variable), output_dir / f"{name}.csv") for name, variable in targets.items()}
    except TesseraError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"Run completed: {len(written)} outputs written to {output_dir}")
    for name, count in written.items():
        typer.echo(f"  {name}.csv ({count} rows)")


if __name__ == "__main__":
    app()
