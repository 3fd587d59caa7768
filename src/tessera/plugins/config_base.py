# src/tessera/plugins/config_base.py
"""Base class for typed entry-point options.

Entry points validate the literal options they receive (column names,
fold counts, loader column specs) through a Pydantic model:

    class RowRangeFilterConfig(EntryPointConfig):
        column: str
        min: float | None = None

    cfg = RowRangeFilterConfig.from_inputs(inputs)
"""

from collections.abc import Mapping
from typing import Any, Self

from pydantic import BaseModel, ValidationError

from tessera.contracts.errors import EntryPointConfigError


class EntryPointConfig(BaseModel):
    """Base class for typed entry-point configurations.

    Unknown fields are rejected when built with from_dict; from_inputs
    picks only the declared fields out of an entry point's input mapping.
    """

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> Self:
        """Create config from a mapping with a clear error on validation failure.

        Raises:
            EntryPointConfigError: If configuration is invalid.
        """
        try:
            return cls.model_validate(dict(config))
        except ValidationError as e:
            raise EntryPointConfigError(f"Invalid configuration for {cls.__name__}: {e}") from e

    @classmethod
    def from_inputs(cls, inputs: Mapping[str, Any]) -> Self:
        """Create config from the subset of ``inputs`` naming declared fields."""
        return cls.from_dict({name: inputs[name] for name in cls.model_fields if name in inputs})
