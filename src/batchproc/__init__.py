"""
batchproc - bounded-concurrency batch runner for external processes.

Hand it a sequence of job descriptors and a ceiling N; it starts jobs as
slots free up, polls for completions, calls you back once per finished
job, and never has more than N running at once.

Quick start::

    from batchproc import BatchProcessor

    def done(job_id, handle):
        print(job_id, handle.exit_code, handle.output)

    BatchProcessor(
        [{"id": n, "command": ["gzip", "-k", f"part-{n}.csv"]} for n in range(20)],
        max_concurrent=4,
        on_complete=done,
    ).start()
"""

__version__ = "0.1.0"

from batchproc.core.errors import (
    BatchProcError,
    InvalidConfigError,
    InvalidDescriptorError,
    ProcessStateError,
)
from batchproc.execution import (
    AdmissionController,
    AdmissionPool,
    BatchProcessor,
    BatchState,
    BatchStats,
    CallableProcessFactory,
    CompletionReaper,
    DefaultProcessFactory,
    ProcessFactory,
    ProcessHandle,
    RunningEntry,
    SubprocessHandle,
)

__all__ = [
    "__version__",
    "BatchProcessor",
    "BatchState",
    "BatchStats",
    "AdmissionController",
    "AdmissionPool",
    "RunningEntry",
    "CompletionReaper",
    "ProcessFactory",
    "DefaultProcessFactory",
    "CallableProcessFactory",
    "ProcessHandle",
    "SubprocessHandle",
    "BatchProcError",
    "InvalidConfigError",
    "InvalidDescriptorError",
    "ProcessStateError",
]
