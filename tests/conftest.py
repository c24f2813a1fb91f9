"""
Shared pytest fixtures for batchproc tests.

This module provides:
- ``FakeHandle``: a scripted ProcessHandle that reports running for a fixed
  number of polls, or until a fake clock has advanced
- ``fake_clock``: patches the wait loop's sleep so polling is instant and
  countable
- Global state cleanup (settings cache, structlog configuration)
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import structlog

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from batchproc.core.logging import clear_context
from batchproc.core.settings import clear_settings_cache


# =============================================================================
# Test doubles
# =============================================================================


class FakeClock:
    """Counts sleeps made by the admission wait loop."""

    def __init__(self) -> None:
        self.ticks = 0
        self.slept: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.ticks += 1


class LiveCounter:
    """Tracks how many fake processes are running at once."""

    def __init__(self) -> None:
        self.live = 0
        self.peak = 0
        self.started: list[Any] = []

    def on_start(self, handle: FakeHandle) -> None:
        self.live += 1
        self.peak = max(self.peak, self.live)
        self.started.append(handle.job_id)

    def on_finish(self, handle: FakeHandle) -> None:
        self.live -= 1


class FakeHandle:
    """ProcessHandle double.

    With ``clock`` set, the handle runs until the clock has ticked
    ``cycles`` times after ``start()``. Without it, ``is_running()``
    returns True for the first ``cycles`` polls.
    """

    def __init__(
        self,
        job_id: Any = None,
        cycles: int = 1,
        clock: FakeClock | None = None,
        counter: LiveCounter | None = None,
    ) -> None:
        self.job_id = job_id
        self.cycles = cycles
        self.clock = clock
        self.counter = counter
        self.start_calls = 0
        self.polls = 0
        self.started_tick: int | None = None
        self.finished = False

    def start(self) -> None:
        self.start_calls += 1
        if self.start_calls > 1:
            raise RuntimeError("started twice")
        if self.clock is not None:
            self.started_tick = self.clock.ticks
        if self.counter is not None:
            self.counter.on_start(self)

    def is_running(self) -> bool:
        if self.start_calls == 0 or self.finished:
            return False
        self.polls += 1
        if self.clock is not None:
            running = self.clock.ticks < self.started_tick + self.cycles
        else:
            running = self.polls <= self.cycles
        if not running:
            self.finished = True
            if self.counter is not None:
                self.counter.on_finish(self)
        return running

    def __repr__(self) -> str:
        return f"FakeHandle({self.job_id!r})"


class RecordingFactory:
    """Callable factory override that builds FakeHandles and remembers them."""

    def __init__(self, clock: FakeClock | None = None, counter: LiveCounter | None = None) -> None:
        self.clock = clock
        self.counter = counter
        self.handles: list[FakeHandle] = []
        self.descriptors: list[Mapping[str, Any]] = []

    def __call__(self, descriptor: Mapping[str, Any]) -> FakeHandle:
        self.descriptors.append(descriptor)
        handle = FakeHandle(
            descriptor.get("id"),
            cycles=descriptor.get("cycles", 1),
            clock=self.clock,
            counter=self.counter,
        )
        self.handles.append(handle)
        return handle


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_clock():
    """Replace the wait loop's sleep with an instant, counting fake."""
    clock = FakeClock()
    with patch("batchproc.execution.admission.time.sleep", side_effect=clock.sleep):
        yield clock


@pytest.fixture
def live_counter() -> LiveCounter:
    return LiveCounter()


@pytest.fixture
def make_handle():
    """Build a poll-counting FakeHandle: ``make_handle(job_id, cycles=1)``."""

    def _make(job_id: Any = None, cycles: int = 1, started: bool = True) -> FakeHandle:
        handle = FakeHandle(job_id, cycles=cycles)
        if started:
            handle.start()
        return handle

    return _make


@pytest.fixture
def recording_factory(fake_clock, live_counter) -> RecordingFactory:
    return RecordingFactory(clock=fake_clock, counter=live_counter)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Keep settings and logging configuration from leaking between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_context()
    structlog.reset_defaults()
