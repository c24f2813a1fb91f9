"""Admission pool — the set of jobs currently in flight.

The pool is plain bookkeeping: it never polls handles and never enforces
the concurrency ceiling itself.  ``AdmissionController`` decides when a
slot is free; ``CompletionReaper`` decides when an entry leaves.

Entries are keyed by an admission sequence number and kept in insertion
order, so scans and drains walk the pool deterministically.

The pool is not thread-safe.  It is owned by a single ``BatchProcessor``
and mutated only from its control flow.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from batchproc.execution.handles import ProcessHandle


@dataclass(frozen=True)
class RunningEntry:
    """An admitted, started job.

    Attributes:
        key: Admission sequence number, unique within one pool
        id: Caller's ``id`` from the descriptor (may be None)
        handle: The started process handle
    """

    key: int
    id: Any
    handle: ProcessHandle


class AdmissionPool:
    """Insertion-ordered collection of :class:`RunningEntry`."""

    def __init__(self) -> None:
        self._entries: dict[int, RunningEntry] = {}
        self._next_key = 0

    def admit(self, id: Any, handle: ProcessHandle) -> RunningEntry:
        """Build an entry with a fresh key, add it, and return it."""
        entry = RunningEntry(key=self.allocate_key(), id=id, handle=handle)
        self.add(entry)
        return entry

    def size(self) -> int:
        return len(self._entries)

    def allocate_key(self) -> int:
        """Reserve the next admission sequence number."""
        key = self._next_key
        self._next_key += 1
        return key

    def add(self, entry: RunningEntry) -> None:
        """Register an entry.

        Raises:
            ValueError: If an entry with the same key is already in flight.
        """
        if entry.key in self._entries:
            raise ValueError(f"Entry {entry.key} is already in the pool")
        self._entries[entry.key] = entry

    def entries(self) -> list[RunningEntry]:
        """Snapshot of current entries in storage order.

        Safe to iterate while the pool is being mutated.
        """
        return list(self._entries.values())

    def remove(self, key: int) -> RunningEntry:
        """Evict an entry.

        Raises:
            KeyError: If ``key`` is not in the pool (double removal).
        """
        return self._entries.pop(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RunningEntry]:
        return iter(self.entries())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return f"AdmissionPool(size={self.size()}, keys={list(self._entries)})"


__all__ = ["RunningEntry", "AdmissionPool"]
