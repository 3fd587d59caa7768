# src/tessera/engine/__init__.py
"""Execution engine: the executor, the experiment facade and the macros."""

from tessera.engine.executor import Executor, ValueTable
from tessera.engine.experiment import Experiment

__all__ = [
    "Executor",
    "Experiment",
    "ValueTable",
]
