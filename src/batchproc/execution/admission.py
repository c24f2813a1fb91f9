"""Admission controller — block until the pool has shrunk to a target size.

WHY
───
Handles expose only a synchronous ``is_running()`` probe, so there is no
event to wait on when a child exits.  The controller polls instead: sleep
a fixed interval, reap, re-check.  A smaller interval reclaims slots
sooner at the cost of more empty scans.

ARCHITECTURE
────────────
::

    wait_until(pool, target)
      while pool.size() > target:
          time.sleep(poll_interval)     ─ always before the check
          reaper.reap(pool, on_complete)

There is no deadline.  If every slot is held by a process that never
exits, ``wait_until`` never returns; per-job timeouts belong to the
handles.  With ``target < 0`` (a ceiling of 0) the loop can only end by
an exception.
"""

from __future__ import annotations

import time

from batchproc.core.logging import get_logger
from batchproc.execution.pool import AdmissionPool
from batchproc.execution.reaper import CompletionCallback, CompletionReaper

logger = get_logger(__name__)


class AdmissionController:
    """Polling wait loop over an :class:`AdmissionPool`."""

    def __init__(
        self,
        reaper: CompletionReaper,
        poll_interval: float = 0.1,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self.reaper = reaper
        self.poll_interval = poll_interval
        self.on_complete = on_complete
        self.polls = 0

    def wait_until(self, pool: AdmissionPool, target_count: int) -> None:
        """Return once ``pool.size() <= target_count``.

        Callback exceptions raised by the reaper propagate.
        """
        if pool.size() > target_count:
            logger.debug("batch.waiting", in_flight=pool.size(), target=target_count)

        while pool.size() > target_count:
            time.sleep(self.poll_interval)
            self.polls += 1
            self.reaper.reap(pool, self.on_complete)


__all__ = ["AdmissionController"]
