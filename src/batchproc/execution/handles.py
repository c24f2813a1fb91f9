"""Process handles — the opaque unit the batch controller starts and polls.

Manifesto:
    The controller never touches a child process directly.  It sees a
    handle with exactly two capabilities: ``start()`` and a non-blocking
    ``is_running()`` probe.  Anything that satisfies that protocol can be
    scheduled: a local subprocess, a remote job, a test double.

ARCHITECTURE
────────────
::

    ProcessHandle (Protocol)
      ├── .start()        ─ begin execution (exactly once)
      └── .is_running()   ─ non-blocking completion probe

    SubprocessHandle      ─ default implementation (subprocess.Popen)
      ├── command         ─ argv sequence, or a shell command line
      ├── cwd / env       ─ working directory, env overlay
      ├── input           ─ stdin payload, spooled to a temp file
      ├── timeout         ─ enforced whenever the handle is probed
      └── output / error_output / exit_code / stop()

    Descriptor field      │ SubprocessHandle
    ──────────────────────┼──────────────────────────────
    command               │ argv (list) or shell line (str)
    cwd                   │ Popen cwd
    env                   │ os.environ overlay (None value unsets)
    input                 │ stdin
    timeout               │ kill after N seconds (default 60, 0 disables)

stdout and stderr are written to temporary files rather than pipes, so a
chatty child can never block on a full pipe buffer while the controller is
asleep between polls.

Related modules:
    factory.py  — turns job descriptors into handles
    reaper.py   — the only caller of ``is_running()`` during a batch

Tags:
    batchproc, execution, process-handle, subprocess

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import subprocess
import tempfile
import time
from collections.abc import Mapping, Sequence
from typing import IO, Protocol, runtime_checkable

from batchproc.core.errors import ProcessStateError
from batchproc.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60.0


@runtime_checkable
class ProcessHandle(Protocol):
    """Startable, pollable unit of external work.

    ``is_running()`` is the sole completion signal the controller relies on.
    It must not block and must eventually return False once the underlying
    work has ended (success, failure or timeout).
    """

    def start(self) -> None:
        """Begin execution. Called exactly once per handle."""
        ...

    def is_running(self) -> bool:
        """Return True while the work is still executing."""
        ...


class SubprocessHandle:
    """Local OS process satisfying :class:`ProcessHandle`.

    Constructing a handle launches nothing; the process is spawned by
    :meth:`start`.

    Example:
        >>> handle = SubprocessHandle(["python", "-c", "print('hi')"])
        >>> handle.start()
        >>> while handle.is_running():
        ...     time.sleep(0.05)
        >>> handle.output
        'hi\\n'
    """

    def __init__(
        self,
        command: Sequence[str] | str,
        *,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str | None] | None = None,
        input: str | bytes | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        kill_timeout_seconds: float = 5.0,
    ) -> None:
        """Initialize the handle.

        Args:
            command: Argument vector, or a string run through the shell.
            cwd: Working directory for the child (None = inherit).
            env: Variables overlaid on the parent environment. A None value
                removes the variable. None inherits the environment unchanged.
            input: Data fed to the child's stdin.
            timeout: Seconds after which the child is killed (None disables).
            kill_timeout_seconds: Grace period between SIGTERM and SIGKILL
                in :meth:`stop`.
        """
        self.command = command
        self.cwd = cwd
        self.env = env
        self.input = input
        self.timeout = timeout
        self._kill_timeout = kill_timeout_seconds

        self._process: subprocess.Popen | None = None
        self._started_at: float | None = None
        self._stdout: IO[bytes] | None = None
        self._stderr: IO[bytes] | None = None
        self._output = ""
        self._error_output = ""
        self._finished = False
        self.timed_out = False

    # ── ProcessHandle protocol ───────────────────────────────────────

    def start(self) -> None:
        """Spawn the child process.

        Raises:
            ProcessStateError: If the handle was already started.
        """
        if self._process is not None:
            raise ProcessStateError("Process has already been started.")

        stdin: IO[bytes] | int = subprocess.DEVNULL
        try:
            if self.input is not None:
                payload = self.input.encode() if isinstance(self.input, str) else self.input
                stdin = tempfile.TemporaryFile()
                stdin.write(payload)
                stdin.seek(0)

            self._stdout = tempfile.TemporaryFile()
            self._stderr = tempfile.TemporaryFile()
            self._process = subprocess.Popen(
                self.command,
                shell=isinstance(self.command, str),
                cwd=self.cwd,
                env=self._build_env(),
                stdin=stdin,
                stdout=self._stdout,
                stderr=self._stderr,
            )
        except BaseException:
            self._close_spools()
            raise
        finally:
            if not isinstance(stdin, int):
                stdin.close()

        self._started_at = time.monotonic()
        logger.debug("process.started", pid=self._process.pid, command=self.command)

    def is_running(self) -> bool:
        """Non-blocking probe; enforces the timeout as a side effect."""
        if self._process is None or self._finished:
            return False

        if self._process.poll() is None:
            if not self._timeout_expired():
                return True
            self.timed_out = True
            logger.warning(
                "process.timed_out",
                pid=self._process.pid,
                timeout=self.timeout,
            )
            self._process.kill()
            self._process.wait()

        self._finalize()
        return False

    # ── Extras ───────────────────────────────────────────────────────

    def wait(self, poll_interval: float = 0.05) -> int | None:
        """Block until the process has finished; returns the exit code."""
        if self._process is None:
            raise ProcessStateError("Process has not been started.")
        while self.is_running():
            time.sleep(poll_interval)
        return self.exit_code

    def stop(self) -> int | None:
        """Terminate the process (SIGTERM → SIGKILL); returns the exit code."""
        if self._process is None:
            return None
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=self._kill_timeout)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
            logger.info("process.stopped", pid=self._process.pid)
        self._finalize()
        return self.exit_code

    @property
    def started(self) -> bool:
        return self._process is not None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def exit_code(self) -> int | None:
        """Exit status once finished (negative signal number on POSIX kill)."""
        if self._process is None:
            return None
        return self._process.returncode

    def is_successful(self) -> bool:
        return self._finished and self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Captured stdout, available once the process has finished."""
        self._require_started()
        return self._output

    @property
    def error_output(self) -> str:
        """Captured stderr, available once the process has finished."""
        self._require_started()
        return self._error_output

    def __repr__(self) -> str:
        return (
            f"SubprocessHandle(command={self.command!r}, pid={self.pid}, "
            f"exit_code={self.exit_code}, timed_out={self.timed_out})"
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _build_env(self) -> dict[str, str] | None:
        if self.env is None:
            return None
        env = dict(os.environ)
        for key, value in self.env.items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = str(value)
        return env

    def _timeout_expired(self) -> bool:
        if self.timeout is None or self._started_at is None:
            return False
        return time.monotonic() - self._started_at > self.timeout

    def _require_started(self) -> None:
        if self._process is None:
            raise ProcessStateError("Process has not been started.")

    def _finalize(self) -> None:
        """Collect captured output and release the spool files (idempotent)."""
        if self._finished:
            return
        self._finished = True
        self._output = _read_spool(self._stdout)
        self._error_output = _read_spool(self._stderr)
        self._close_spools()
        logger.debug(
            "process.finished",
            pid=self.pid,
            exit_code=self.exit_code,
            timed_out=self.timed_out,
        )

    def _close_spools(self) -> None:
        for spool in (self._stdout, self._stderr):
            if spool is not None:
                spool.close()
        self._stdout = None
        self._stderr = None


def _read_spool(spool: IO[bytes] | None) -> str:
    if spool is None:
        return ""
    spool.seek(0)
    return spool.read().decode("utf-8", errors="replace")


__all__ = ["DEFAULT_TIMEOUT", "ProcessHandle", "SubprocessHandle"]
