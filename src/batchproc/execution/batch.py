"""Batch processor — run a stream of jobs with at most N in flight.

Manifesto:
    The controller is a single cooperative loop.  Parallelism comes from
    the child processes themselves; the loop only admits, polls and
    reaps.  Because one control flow owns the pool, no locking is needed.

ARCHITECTURE
────────────
::

    BatchProcessor(jobs, max_concurrent, on_complete, poll_interval, process_factory)
      └── .start()
            RUNNING   for each descriptor (pulled one at a time):
                        wait_until(pool, max_concurrent - 1)
                        validate descriptor is a mapping
                        handle = factory.create(descriptor)
                        pool.admit(id, handle); handle.start()
                        reaper.reap(pool)              ─ opportunistic
            DRAINING  wait_until(pool, 0)
            DONE      pool is empty

    Any exception (invalid descriptor, callback failure, spawn error)
    moves the processor to FAILED and propagates.  Jobs already started
    are left running and stay visible through ``in_flight()``.

Example::

    def done(job_id, handle):
        print(job_id, handle.exit_code)

    BatchProcessor(
        [{"id": i, "command": ["sleep", "1"]} for i in range(10)],
        max_concurrent=3,
        on_complete=done,
    ).start()

Tags:
    batchproc, execution, batch, admission-control, polling

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from batchproc.core.errors import BatchProcError, InvalidConfigError, InvalidDescriptorError
from batchproc.core.logging import LogContext, get_logger
from batchproc.core.settings import BatchSettings, get_settings
from batchproc.execution.admission import AdmissionController
from batchproc.execution.factory import ProcessCreator, ProcessFactory, resolve_factory
from batchproc.execution.handles import DEFAULT_TIMEOUT
from batchproc.execution.pool import AdmissionPool, RunningEntry
from batchproc.execution.reaper import CompletionCallback, CompletionReaper

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.1


class BatchState(str, Enum):
    """Lifecycle of one :class:`BatchProcessor`."""

    PENDING = "pending"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BatchStats:
    """Counters for one batch run."""

    admitted: int = 0
    completed: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0
    polls: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "admitted": self.admitted,
            "completed": self.completed,
            "in_flight": self.in_flight,
            "peak_in_flight": self.peak_in_flight,
            "polls": self.polls,
        }


class BatchProcessor:
    """Bounded-concurrency scheduler for externally executed jobs.

    All options are fixed at construction.  A processor runs its job
    source exactly once; the source is never rewound.
    """

    def __init__(
        self,
        jobs: Iterable[Mapping[str, Any]],
        max_concurrent: int,
        on_complete: CompletionCallback | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        process_factory: ProcessFactory | ProcessCreator | None = None,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the processor.

        Args:
            jobs: Finite list or lazy iterable of job descriptors.
            max_concurrent: Concurrency ceiling, >= 0. With 0 nothing is
                ever admitted and ``start()`` blocks.
            on_complete: Optional ``(id, handle)`` callback per finished job.
                Exceptions it raises abort the batch.
            poll_interval: Seconds slept before every completion scan.
            process_factory: Replaces the default descriptor → handle
                strategy; a callable or an object with ``create()``.
            default_timeout: Job timeout used by the default strategy.

        Raises:
            InvalidConfigError: If any option is out of range.
        """
        if not isinstance(jobs, Iterable):
            raise InvalidConfigError("jobs", jobs, "jobs must be an iterable of job descriptors")
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 0:
            raise InvalidConfigError("max_concurrent", max_concurrent, "max_concurrent must be an int >= 0")
        if poll_interval < 0:
            raise InvalidConfigError("poll_interval", poll_interval, "poll_interval must be >= 0")
        if on_complete is not None and not callable(on_complete):
            raise InvalidConfigError("on_complete", on_complete, "on_complete must be callable")

        self._jobs = jobs
        self._max_concurrent = max_concurrent
        self._on_complete = on_complete
        self._poll_interval = poll_interval
        self._factory = resolve_factory(process_factory, default_timeout=default_timeout)

        self._pool = AdmissionPool()
        self._reaper = CompletionReaper()
        self._admission = AdmissionController(self._reaper, poll_interval, on_complete)
        self._state = BatchState.PENDING
        self._admitted = 0
        self._peak_in_flight = 0
        self.batch_id = uuid.uuid4().hex[:12]

    @classmethod
    def from_settings(
        cls,
        jobs: Iterable[Mapping[str, Any]],
        settings: BatchSettings | None = None,
        on_complete: CompletionCallback | None = None,
        process_factory: ProcessFactory | ProcessCreator | None = None,
    ) -> BatchProcessor:
        """Build a processor whose options come from :class:`BatchSettings`."""
        settings = settings or get_settings()
        return cls(
            jobs,
            settings.max_concurrent,
            on_complete=on_complete,
            poll_interval=settings.poll_interval,
            process_factory=process_factory,
            default_timeout=settings.default_timeout,
        )

    # ── Read-only configuration ──────────────────────────────────────

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def process_factory(self) -> ProcessFactory:
        return self._factory

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def stats(self) -> BatchStats:
        return BatchStats(
            admitted=self._admitted,
            completed=self._reaper.reaped_total,
            in_flight=self._pool.size(),
            peak_in_flight=self._peak_in_flight,
            polls=self._admission.polls,
        )

    def in_flight(self) -> list[RunningEntry]:
        """Entries admitted but not yet reaped (snapshot)."""
        return self._pool.entries()

    # ── Entry point ──────────────────────────────────────────────────

    def start(self) -> None:
        """Process every job, then wait for all of them to finish.

        Raises:
            InvalidDescriptorError: A descriptor is not a mapping, or the
                default factory found no ``command``.
            BatchProcError: The processor was already started.
            Exception: Anything raised by the completion callback or the
                process factory, unchanged.
        """
        if self._state is not BatchState.PENDING:
            raise BatchProcError(
                f"Batch {self.batch_id} was already started (state={self._state.value})"
            )

        with LogContext(batch_id=self.batch_id):
            self._state = BatchState.RUNNING
            logger.info(
                "batch.started",
                max_concurrent=self._max_concurrent,
                poll_interval=self._poll_interval,
                factory=type(self._factory).__name__,
            )
            try:
                self._run()
                self._drain()
            except BaseException as exc:
                self._state = BatchState.FAILED
                logger.error(
                    "batch.failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    left_in_flight=self._pool.size(),
                    **self.stats.to_dict(),
                )
                raise

            self._state = BatchState.DONE
            logger.info("batch.completed", **self.stats.to_dict())

    # ── Phases ───────────────────────────────────────────────────────

    def _run(self) -> None:
        for index, descriptor in enumerate(self._jobs):
            self._admission.wait_until(self._pool, self._max_concurrent - 1)

            if not isinstance(descriptor, Mapping):
                raise InvalidDescriptorError(
                    f"Job descriptor must be a mapping, got {type(descriptor).__name__}."
                ).with_context(batch_id=self.batch_id, descriptor_index=index)

            job_id = descriptor.get("id")
            try:
                handle = self._factory.create(descriptor)
            except InvalidDescriptorError as exc:
                exc.with_context(batch_id=self.batch_id, descriptor_index=index, job_id=job_id)
                raise

            entry = self._pool.admit(job_id, handle)
            handle.start()
            self._admitted += 1
            self._peak_in_flight = max(self._peak_in_flight, self._pool.size())
            logger.debug("batch.job_admitted", job_id=job_id, key=entry.key, in_flight=self._pool.size())

            self._reaper.reap(self._pool, self._on_complete)

    def _drain(self) -> None:
        self._state = BatchState.DRAINING
        logger.debug("batch.draining", in_flight=self._pool.size())
        self._admission.wait_until(self._pool, 0)

    def __repr__(self) -> str:
        return (
            f"BatchProcessor(batch_id={self.batch_id!r}, state={self._state.value}, "
            f"max_concurrent={self._max_concurrent}, in_flight={self._pool.size()})"
        )


__all__ = ["BatchProcessor", "BatchState", "BatchStats", "DEFAULT_POLL_INTERVAL"]
