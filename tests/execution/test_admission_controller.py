"""Tests for the polling wait loop."""

from unittest.mock import MagicMock, call, patch

import pytest

from batchproc.execution.admission import AdmissionController
from batchproc.execution.pool import AdmissionPool
from batchproc.execution.reaper import CompletionReaper


class TestAdmissionController:
    """Tests for AdmissionController.wait_until()."""

    def test_returns_immediately_when_under_target(self, fake_clock, make_handle):
        pool = AdmissionPool()
        pool.admit("a", make_handle("a", cycles=100))
        controller = AdmissionController(CompletionReaper(), poll_interval=0.5)

        controller.wait_until(pool, 1)

        assert fake_clock.ticks == 0
        assert controller.polls == 0

    def test_sleeps_before_first_check(self, make_handle):
        """Even an already-finished job is only reaped after one sleep."""
        pool = AdmissionPool()
        pool.admit("a", make_handle("a", cycles=0))
        reaper = MagicMock(wraps=CompletionReaper())

        manager = MagicMock()
        manager.attach_mock(reaper.reap, "reap")
        with patch("batchproc.execution.admission.time.sleep") as sleep:
            manager.attach_mock(sleep, "sleep")
            AdmissionController(reaper, poll_interval=0.25).wait_until(pool, 0)

        assert manager.mock_calls[:2] == [call.sleep(0.25), call.reap(pool, None)]
        assert pool.size() == 0

    def test_polls_until_target_reached(self, fake_clock, make_handle):
        pool = AdmissionPool()
        pool.admit("a", make_handle("a", cycles=3))
        pool.admit("b", make_handle("b", cycles=1))
        controller = AdmissionController(CompletionReaper(), poll_interval=0.1)

        controller.wait_until(pool, 0)

        assert pool.size() == 0
        assert controller.polls == fake_clock.ticks
        assert fake_clock.slept == [0.1] * fake_clock.ticks

    def test_stops_at_intermediate_target(self, fake_clock, make_handle):
        pool = AdmissionPool()
        pool.admit("fast", make_handle("fast", cycles=1))
        pool.admit("slow", make_handle("slow", cycles=1000))

        AdmissionController(CompletionReaper(), poll_interval=0.1).wait_until(pool, 1)

        assert [e.id for e in pool.entries()] == ["slow"]

    def test_passes_callback_to_reaper(self, fake_clock, make_handle):
        pool = AdmissionPool()
        handle = make_handle("a", cycles=1)
        pool.admit("a", handle)
        callback = MagicMock()

        AdmissionController(CompletionReaper(), 0.1, callback).wait_until(pool, 0)

        callback.assert_called_once_with("a", handle)

    def test_negative_target_never_returns(self):
        """A ceiling of zero means waiting for size <= -1: only an exception ends it."""

        class Stop(Exception):
            pass

        sleeps = []

        def bounded_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) >= 20:
                raise Stop

        pool = AdmissionPool()
        with patch("batchproc.execution.admission.time.sleep", side_effect=bounded_sleep):
            with pytest.raises(Stop):
                AdmissionController(CompletionReaper(), 0.01).wait_until(pool, -1)

        assert len(sleeps) == 20
        assert pool.size() == 0

    def test_callback_failure_propagates(self, fake_clock, make_handle):
        pool = AdmissionPool()
        pool.admit("a", make_handle("a", cycles=0))

        def boom(job_id, handle):
            raise ValueError("bad exit")

        with pytest.raises(ValueError, match="bad exit"):
            AdmissionController(CompletionReaper(), 0.1, boom).wait_until(pool, 0)
        assert pool.size() == 0
