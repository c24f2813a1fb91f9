"""Process factories — turn a job descriptor into an un-started handle.

Two strategies sit behind one protocol and are selected when the
``BatchProcessor`` is constructed:

    ProcessFactory (Protocol)
      ├── DefaultProcessFactory   ─ reads command/cwd/env/input/timeout
      └── CallableProcessFactory  ─ caller-supplied ``fn(descriptor)``

Neither strategy starts the process; starting is the driver's job.

Example::

    factory = resolve_factory(None)
    handle = factory.create({"id": 1, "command": ["echo", "hi"]})

    factory = resolve_factory(lambda d: MyRemoteJob(d["url"]))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from batchproc.core.errors import InvalidConfigError, InvalidDescriptorError
from batchproc.execution.handles import DEFAULT_TIMEOUT, ProcessHandle, SubprocessHandle

ProcessCreator = Callable[[Mapping[str, Any]], ProcessHandle]


@runtime_checkable
class ProcessFactory(Protocol):
    """Strategy that maps a descriptor to a handle."""

    def create(self, descriptor: Mapping[str, Any]) -> ProcessHandle:
        ...


class DefaultProcessFactory:
    """Builds a :class:`SubprocessHandle` from well-known descriptor fields."""

    def __init__(self, default_timeout: float | None = DEFAULT_TIMEOUT) -> None:
        self.default_timeout = default_timeout

    def create(self, descriptor: Mapping[str, Any]) -> SubprocessHandle:
        """Create a handle for ``descriptor``.

        A ``timeout`` of 0 disables the timeout; an absent or null one uses
        ``default_timeout``.

        Raises:
            InvalidDescriptorError: If ``command`` is absent, empty or not a
                string or list of strings, or ``input``/``timeout`` has the
                wrong type.
        """
        command = descriptor.get("command")
        if command is None:
            raise InvalidDescriptorError("Job descriptor must contain a 'command' key.")
        _check_command(command)

        stdin = descriptor.get("input")
        if stdin is not None and not isinstance(stdin, (str, bytes)):
            raise InvalidDescriptorError(
                f"Job 'input' must be a string, got {type(stdin).__name__}."
            )

        return SubprocessHandle(
            command,
            cwd=descriptor.get("cwd"),
            env=descriptor.get("env"),
            input=stdin,
            timeout=self._timeout_for(descriptor.get("timeout")),
        )

    def _timeout_for(self, timeout: Any) -> float | None:
        # None falls back to the default; 0 disables the timeout
        if timeout is None:
            return self.default_timeout
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
            raise InvalidDescriptorError(
                f"Job 'timeout' must be a number >= 0, got {timeout!r}."
            )
        return timeout or None

    def __repr__(self) -> str:
        return f"DefaultProcessFactory(default_timeout={self.default_timeout})"


def _check_command(command: Any) -> None:
    if isinstance(command, str):
        if not command.strip():
            raise InvalidDescriptorError("Job 'command' must not be empty.")
        return
    if (
        not isinstance(command, (list, tuple))
        or not command
        or not all(isinstance(arg, str) for arg in command)
    ):
        raise InvalidDescriptorError(
            "Job 'command' must be a shell string or a non-empty list of strings."
        )


class CallableProcessFactory:
    """Adapts a caller-supplied callable to :class:`ProcessFactory`.

    The callable receives the raw descriptor and is fully responsible for
    returning a usable handle; its output is not validated.
    """

    def __init__(self, creator: ProcessCreator) -> None:
        self._creator = creator

    def create(self, descriptor: Mapping[str, Any]) -> ProcessHandle:
        return self._creator(descriptor)

    def __repr__(self) -> str:
        return f"CallableProcessFactory({self._creator!r})"


def resolve_factory(
    override: ProcessFactory | ProcessCreator | None,
    *,
    default_timeout: float | None = DEFAULT_TIMEOUT,
) -> ProcessFactory:
    """Select the factory strategy for a batch.

    Args:
        override: None for the default strategy, an object with a
            ``create()`` method, or a plain callable.
        default_timeout: Timeout used by the default strategy.

    Raises:
        InvalidConfigError: If ``override`` is neither a factory nor callable.
    """
    if override is None:
        return DefaultProcessFactory(default_timeout=default_timeout)
    if isinstance(override, ProcessFactory):
        return override
    if callable(override):
        return CallableProcessFactory(override)
    raise InvalidConfigError(
        "process_factory",
        override,
        "process_factory must be callable or provide a create() method",
    )


__all__ = [
    "ProcessCreator",
    "ProcessFactory",
    "DefaultProcessFactory",
    "CallableProcessFactory",
    "resolve_factory",
]
