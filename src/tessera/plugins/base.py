# src/tessera/plugins/base.py
"""Entry-point descriptors.

An entry point is a value-typed descriptor (declared inputs and outputs)
plus an invocation callable. Node kinds are dispatched by looking the
descriptor up in the registry; there is no class hierarchy to inherit.

Example:
    @entry_point(
        "transforms.no_operation",
        inputs={"data": required(ValueKind.ROW_STREAM)},
        outputs={"output_data": produces(ValueKind.ROW_STREAM)},
    )
    def no_operation(ctx, inputs):
        return {"output_data": inputs["data"]}
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tessera.contracts.enums import ValueKind

if TYPE_CHECKING:
    from tessera.plugins.context import EntryPointContext

type Invoke = Callable[["EntryPointContext", dict[str, Any]], Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class InputParam:
    """Declared input parameter of an entry point."""

    kind: ValueKind
    required: bool = True
    default: Any = None
    item_kind: ValueKind | None = None
    description: str = ""

    def describe_type(self) -> str:
        if self.item_kind is not None:
            return f"{self.kind}<{self.item_kind}>"
        return str(self.kind)


@dataclass(frozen=True, slots=True)
class OutputParam:
    """Declared output of an entry point."""

    kind: ValueKind
    item_kind: ValueKind | None = None
    description: str = ""


def required(kind: ValueKind, *, item_kind: ValueKind | None = None, description: str = "") -> InputParam:
    return InputParam(kind, required=True, item_kind=item_kind, description=description)


def optional(
    kind: ValueKind,
    default: Any = None,
    *,
    item_kind: ValueKind | None = None,
    description: str = "",
) -> InputParam:
    return InputParam(kind, required=False, default=default, item_kind=item_kind, description=description)


def produces(kind: ValueKind, *, item_kind: ValueKind | None = None, description: str = "") -> OutputParam:
    return OutputParam(kind, item_kind=item_kind, description=description)


@dataclass(frozen=True, slots=True)
class EntryPointSpec:
    """Registration record for an entry point.

    Attributes:
        kind: Registered name, e.g. "trainers.logistic_regression_binary_classifier"
        inputs: Declared input parameters by name
        outputs: Declared outputs by name
        invoke: Callable receiving the context and the resolved inputs,
            returning a mapping with exactly the declared outputs
        is_macro: True for entry points that expand an embedded graph template
        template_inputs: For macros, Subgraph input names the template must declare
        template_outputs: For macros, Subgraph output names the template must declare
    """

    kind: str
    inputs: Mapping[str, InputParam]
    outputs: Mapping[str, OutputParam]
    invoke: Invoke = field(repr=False)
    description: str = ""
    is_macro: bool = False
    template_inputs: frozenset[str] = frozenset()
    template_outputs: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        clash = set(self.inputs) & set(self.outputs)
        if clash:
            raise ValueError(f"Entry point '{self.kind}' uses names as both input and output: {', '.join(sorted(clash))}")
        if self.is_macro and not any(param.kind == ValueKind.GRAPH for param in self.inputs.values()):
            raise ValueError(f"Macro entry point '{self.kind}' must declare a graph input")
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))

    @property
    def short_name(self) -> str:
        return self.kind.rsplit(".", 1)[-1]

    def defaults(self) -> dict[str, Any]:
        return {name: param.default for name, param in self.inputs.items() if not param.required}


def entry_point(
    kind: str,
    *,
    inputs: Mapping[str, InputParam],
    outputs: Mapping[str, OutputParam],
    description: str = "",
    macro: bool = False,
    template_inputs: Iterable[str] = (),
    template_outputs: Iterable[str] = (),
) -> Callable[[Invoke], EntryPointSpec]:
    """Decorator turning an invocation function into an EntryPointSpec."""

    def decorate(invoke: Invoke) -> EntryPointSpec:
        return EntryPointSpec(
            kind=kind,
            inputs=inputs,
            outputs=outputs,
            invoke=invoke,
            description=description or (invoke.__doc__ or "").strip().split("\n")[0],
            is_macro=macro,
            template_inputs=frozenset(template_inputs),
            template_outputs=frozenset(template_outputs),
        )

    return decorate
