"""Batch execution — admission, completion tracking, process handles.

ARCHITECTURE
────────────
::

    handles.py    ProcessHandle protocol + SubprocessHandle
    factory.py    descriptor → handle strategies
    pool.py       AdmissionPool of RunningEntry
    reaper.py     CompletionReaper (one pass = detect, evict, callback)
    admission.py  AdmissionController (sleep → reap until size <= target)
    batch.py      BatchProcessor (run, drain, done)

Dependency order: handles → factory → pool → reaper → admission → batch.
"""

from .admission import AdmissionController
from .batch import BatchProcessor, BatchState, BatchStats
from .factory import CallableProcessFactory, DefaultProcessFactory, ProcessFactory, resolve_factory
from .handles import ProcessHandle, SubprocessHandle
from .pool import AdmissionPool, RunningEntry
from .reaper import CompletionReaper

__all__ = [
    "AdmissionController",
    "AdmissionPool",
    "BatchProcessor",
    "BatchState",
    "BatchStats",
    "CallableProcessFactory",
    "CompletionReaper",
    "DefaultProcessFactory",
    "ProcessFactory",
    "ProcessHandle",
    "RunningEntry",
    "SubprocessHandle",
    "resolve_factory",
]
