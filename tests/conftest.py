"""
Shared fixtures for all tests.

Every test runs inside its own execution scope with a fresh process-wide
instrumentation state, so statistics and wrap bookkeeping never leak
between tests.
"""

from typing import List

import pytest
from loguru import logger

from callwatch.compat_logger import CompatibleLogger
from callwatch.scope import execution_scope
from callwatch.state import reset_instrumentation_state


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1000):
        self.now = start

    def advance(self, ms: int) -> None:
        self.now += ms

    def __call__(self) -> int:
        return self.now


@pytest.fixture(autouse=True)
def fresh_state():
    """Drop wrap registry and init-once latches around each test."""
    reset_instrumentation_state()
    yield
    reset_instrumentation_state()


@pytest.fixture(autouse=True)
def active_scope():
    """Isolated execution scope for the duration of a test."""
    with execution_scope("test") as scope:
        yield scope


@pytest.fixture
def log_lines() -> List[str]:
    return []


@pytest.fixture
def recording_logger(log_lines) -> CompatibleLogger:
    """Logger writing "[LEVEL] profiler - message" lines into log_lines."""
    return CompatibleLogger("profiler", sink=log_lines.append)


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def loguru_messages():
    """Capture loguru output as "LEVEL message" strings."""
    messages: List[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.rstrip("\n")), format="{level} {message}")
    yield messages
    logger.remove(handler_id)
