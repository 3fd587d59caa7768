"""Semantic type aliases for compile-time type safety.

NewType creates distinct types that mypy treats as incompatible,
preventing accidental misuse of semantically different string values.
"""

from typing import NewType

NodeID = NewType("NodeID", str)
"""Node identifier, unique within one graph (e.g. 'text_loader_0', 'fold1/sdca')"""

VariableID = NewType("VariableID", str)
"""Opaque handle into a graph's variable table (e.g. 'text_loader_0.data')"""

EntryPointKind = NewType("EntryPointKind", str)
"""Registered entry-point name (e.g. 'models.cross_validator')"""
