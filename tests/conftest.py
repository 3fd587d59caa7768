# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Iterator

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings
from structlog.stdlib import ProcessorFormatter

from tessera.core.environment import ExperimentEnvironment
from tessera.plugins.manager import EntryPointRegistry
from tests.helpers.entry_points import toy_registry

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture
def registry() -> EntryPointRegistry:
    """Fresh registry with every built-in entry point."""
    return EntryPointRegistry.with_builtins()


@pytest.fixture
def env(registry: EntryPointRegistry) -> ExperimentEnvironment:
    return ExperimentEnvironment(seed=7, registry=registry)


@pytest.fixture
def toy_env() -> ExperimentEnvironment:
    """Environment whose registry holds the toy entry points and the macros."""
    return ExperimentEnvironment(seed=7, registry=toy_registry())


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Drop handlers installed by configure_logging; they hold captured streams."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, ProcessorFormatter):
            root.removeHandler(handler)
    structlog.reset_defaults()
