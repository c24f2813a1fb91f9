"""
Structured error types for batchproc.

Every failure the library raises on its own account is a ``BatchProcError``.
Each one knows its category, the batch/job coordinates it was raised for,
and the lower-level exception that caused it, if any.

Manifesto:
    - **One tree, three branches:** bad input (VALIDATION), bad options
      (CONFIG), misuse of a process handle (PROCESS)
    - **Fatal by default:** the controller never retries; an error surfaces
      once, from ``BatchProcessor.start()``
    - **Coordinates travel with the error:** ``batch_id``, ``job_id`` and
      ``descriptor_index`` are filled in at the point the controller knows them
    - **Callbacks are not wrapped:** whatever ``on_complete`` raises reaches
      the caller as-is

Architecture:
    ::

        BatchProcError  (category, context: ErrorContext, cause)
          ├── ValidationError ─────── InvalidDescriptorError   (also ValueError)
          ├── ConfigError ─────────── InvalidConfigError       (key, value)
          └── ProcessError ────────── ProcessStateError

Examples:
    >>> err = InvalidDescriptorError("Job descriptor must contain a 'command' key.")
    >>> err.with_context(job_id="x", descriptor_index=0).context.job_id
    'x'
    >>> err.to_dict()["category"]
    'VALIDATION'

Tags:
    error-handling, exception-hierarchy, batchproc

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse classification used in log fields and CLI exit handling."""

    VALIDATION = "VALIDATION"     # job descriptor has the wrong shape
    CONFIG = "CONFIG"             # constructor option out of range
    PROCESS = "PROCESS"           # handle used in the wrong lifecycle state
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Where in a batch an error happened.

    Attributes:
        batch_id: ``BatchProcessor.batch_id`` of the run
        job_id: ``id`` of the offending descriptor (None when absent)
        descriptor_index: Zero-based position of the descriptor in the job source
        metadata: Anything else worth logging (line numbers, config keys)
    """

    batch_id: str | None = None
    job_id: Any = None
    descriptor_index: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a dict of the set fields plus metadata."""
        flat = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        flat.update(self.metadata)
        return flat


class BatchProcError(Exception):
    """
    Root of the batchproc exception tree.

    Subclasses pick their category through ``default_category``; a caller
    may still pass ``category=`` explicitly.

    Examples:
        >>> BatchProcError("pool corrupted").category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> err = BatchProcError("could not launch", cause=OSError("fork failed"))
        >>> err.to_dict()["cause"]
        'fork failed'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BatchProcError:
        """
        Fill in batch coordinates and return ``self``.

        ``batch_id``, ``job_id`` and ``descriptor_index`` are set on the
        context; any other keyword lands in ``context.metadata``.

        Usage:
            raise InvalidDescriptorError("Missing command").with_context(
                job_id="x", descriptor_index=3
            )
        """
        known = {f.name for f in fields(self.context)} - {"metadata"}
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serializable summary for ``logger.error(..., **err.to_dict())``."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(BatchProcError):
    """Input did not have the required shape."""

    default_category = ErrorCategory.VALIDATION


class InvalidDescriptorError(ValidationError, ValueError):
    """A job descriptor is not a mapping, or has a missing or malformed field.

    Fatal: the batch is abandoned as soon as this is raised.
    """


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(BatchProcError):
    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """A constructor option or setting has an unusable value."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        super().__init__(message or f"Invalid value for {key}: {value!r}")
        self.key = key
        self.value = value
        self.context.metadata["config_key"] = key


# =============================================================================
# PROCESS HANDLES
# =============================================================================


class ProcessError(BatchProcError):
    default_category = ErrorCategory.PROCESS


class ProcessStateError(ProcessError):
    """e.g. ``start()`` called twice, or output read before ``start()``."""


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BatchProcError",
    "ValidationError",
    "InvalidDescriptorError",
    "ConfigError",
    "InvalidConfigError",
    "ProcessError",
    "ProcessStateError",
]
