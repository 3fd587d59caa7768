# src/tessera/engine/macros/__init__.py
"""Macro entry points: nodes that expand an embedded graph template.

Each macro clones its template once per instantiation (fold, class, or
the single train/test split), runs the clones through the compiler and
executor, and merges their outputs in instantiation order.
"""

from tessera.engine.macros.cross_validation import cross_validator
from tessera.engine.macros.one_versus_all import OvaPredictor, one_versus_all
from tessera.engine.macros.train_test import train_test_evaluator

ENTRY_POINTS = [cross_validator, one_versus_all, train_test_evaluator]

__all__ = [
    "ENTRY_POINTS",
    "OvaPredictor",
    "cross_validator",
    "one_versus_all",
    "train_test_evaluator",
]
