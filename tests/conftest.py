# tests/conftest.py
"""Shared test fixtures and Hypothesis configuration.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from multifetch.core.config import SchedulerConfig
from multifetch.scheduling.scheduler import FetchScheduler
from tests.helpers.fake_multiplexer import ScriptedMultiplexer

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
def multiplexer() -> ScriptedMultiplexer:
    """Scripted multiplexer finishing one transfer per select(), oldest first."""
    return ScriptedMultiplexer()


@pytest.fixture
def make_scheduler(multiplexer: ScriptedMultiplexer):
    """Factory building a FetchScheduler over the scripted multiplexer."""

    def _make(**config: object) -> FetchScheduler:
        return FetchScheduler(SchedulerConfig(**config), multiplexer)

    return _make


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """Undo configure_logging() so later tests never write to a closed capture stream."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
