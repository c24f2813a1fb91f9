"""Completion reaper — detect finished jobs and reclaim their slots.

One :meth:`CompletionReaper.reap` call is one pass over a snapshot of the
pool.  Every entry whose handle reports "not running" is evicted and then
handed to the completion callback, in storage order.

Eviction happens before the callback runs.  If the callback raises, the
exception propagates out of ``reap()`` untouched, the entry stays evicted,
and entries later in the snapshot are left for a future pass.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from batchproc.core.logging import get_logger
from batchproc.execution.handles import ProcessHandle
from batchproc.execution.pool import AdmissionPool, RunningEntry

logger = get_logger(__name__)

CompletionCallback = Callable[[Any, ProcessHandle], None]


class CompletionReaper:
    """Scans an :class:`AdmissionPool` for finished handles."""

    def __init__(self) -> None:
        self.reaped_total = 0

    def reap(
        self,
        pool: AdmissionPool,
        on_complete: CompletionCallback | None = None,
    ) -> list[RunningEntry]:
        """Run one completion pass.

        Args:
            pool: Pool to scan and evict from.
            on_complete: Optional ``(id, handle)`` callback, invoked once
                per finished entry.

        Returns:
            Entries evicted by this pass, in storage order.
        """
        reaped: list[RunningEntry] = []
        for entry in pool.entries():
            if entry.handle.is_running():
                continue

            pool.remove(entry.key)
            reaped.append(entry)
            self.reaped_total += 1
            logger.debug("batch.job_reaped", job_id=entry.id, key=entry.key)

            if on_complete is not None:
                on_complete(entry.id, entry.handle)

        return reaped


__all__ = ["CompletionCallback", "CompletionReaper"]
