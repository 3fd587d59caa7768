"""Error taxonomy for graph construction, compilation and execution.

Compile-time errors (GraphValidationError subclasses) are always fatal to
compilation and never reach the executor. Runtime errors abort the current
graph execution with no partial-result recovery. InstantiationWarning is
not an exception: macros collect it and surface it on their warnings
stream.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class TesseraError(Exception):
    """Base class for all errors raised by Tessera."""


# =============================================================================
# Build-time
# =============================================================================


class GraphBuildError(TesseraError):
    """Raised when a node cannot be added to a graph.

    Only local shape is checked at build time: unknown parameter names,
    duplicate node ids, Variables that belong to another graph.
    """


# =============================================================================
# Compile-time
# =============================================================================


class GraphValidationError(TesseraError, ValueError):
    """Raised when graph validation fails."""


class UnknownEntryPointError(GraphValidationError):
    """Raised when a node kind is not registered."""

    def __init__(self, kind: str, suggestions: Sequence[str] = ()) -> None:
        self.kind = kind
        self.suggestions = tuple(suggestions)
        message = f"Unknown entry point '{kind}'"
        if self.suggestions:
            message += f". Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)


class UnresolvedInputError(GraphValidationError):
    """Raised when a node input has no producer and is not externally bound."""

    def __init__(self, node_id: str | None, param: str, variable_id: str | None, reason: str = "") -> None:
        self.node_id = node_id
        self.param = param
        self.variable_id = variable_id
        where = f"node '{node_id}' input '{param}'" if node_id is not None else f"input '{param}'"
        if variable_id is None:
            message = f"Required {where} is not bound"
        else:
            message = f"Variable '{variable_id}' consumed by {where} has no producer and is not bound"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class CyclicGraphError(GraphValidationError):
    """Raised when the dependency graph cannot be ordered.

    Attributes:
        remainder: Node ids left unresolved by the topological sort, in
            authoring order. Includes nodes downstream of the cycle.
    """

    def __init__(self, remainder: Sequence[str]) -> None:
        self.remainder = tuple(remainder)
        super().__init__(f"Graph contains a cycle; unresolved nodes: {', '.join(self.remainder)}")


class TypeMismatchError(GraphValidationError):
    """Raised when a bound value's type does not match the declared parameter type."""

    def __init__(self, where: str, expected: str, actual: str) -> None:
        self.where = where
        self.expected = expected
        self.actual = actual
        super().__init__(f"Type mismatch for {where}: expected {expected}, got {actual}")


class TemplateError(GraphValidationError):
    """Raised when a macro node's embedded graph template is malformed."""

    def __init__(self, node_id: str | None, message: str) -> None:
        self.node_id = node_id
        prefix = f"Template of macro node '{node_id}'" if node_id is not None else "Graph template"
        super().__init__(f"{prefix}: {message}")


# =============================================================================
# Runtime
# =============================================================================


class ExecutionStateError(TesseraError):
    """Raised when an operation is not permitted in the current execution state.

    Examples: binding an input after execution started, running a graph
    that was modified after compilation, reading an output that was never
    produced.
    """


class EntryPointConfigError(TesseraError):
    """Raised when the literal options passed to an entry point are invalid."""


class InvocationError(TesseraError):
    """Raised when a node's entry point fails during execution.

    Fatal to the graph execution. Carries the failing node's id and kind;
    for failures inside a macro instantiation, ``instantiation`` holds the
    instantiation index and the nested error is the ``cause``.
    """

    def __init__(
        self,
        node_id: str,
        kind: str,
        cause: BaseException | str,
        *,
        instantiation: int | None = None,
    ) -> None:
        self.node_id = node_id
        self.kind = kind
        self.cause = cause
        self.instantiation = instantiation
        where = f"Node '{node_id}' ({kind})"
        if instantiation is not None:
            where += f" instantiation {instantiation}"
        detail = cause if isinstance(cause, str) else f"{type(cause).__name__}: {cause}"
        super().__init__(f"{where} failed: {detail}")


class PartitionError(TesseraError):
    """Raised when a macro cannot partition its input data.

    Fatal to the macro, e.g. the stratification column is absent or is not
    a discrete scalar column.
    """

    def __init__(self, node_id: str | None, message: str) -> None:
        self.node_id = node_id
        prefix = f"Node '{node_id}': " if node_id is not None else ""
        super().__init__(f"{prefix}{message}")


# =============================================================================
# Diagnostics
# =============================================================================


@dataclass(frozen=True, slots=True)
class InstantiationWarning:
    """Non-fatal diagnostic collected during macro expansion.

    Warnings do not abort the macro. They are emitted, in order, on the
    macro's warnings row-stream.
    """

    message: str
    instantiation: int | None = None

    def __str__(self) -> str:
        return self.message
