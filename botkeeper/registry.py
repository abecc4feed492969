"""In-memory record of which workloads currently have a live subprocess."""

from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from botkeeper.discovery import sort_ids


@dataclass(frozen=True)
class RegistryEntry:
    """A running workload: its process handle and when it was started."""
    workload_id: str
    handle: Any  # asyncio.subprocess.Process
    started_at: dt.datetime

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.handle, "pid", None)


class ProcessRegistry:
    """Single source of truth for "what is running".

    Holds at most one entry per workload id. Every read and write takes the
    same lock so snapshots are consistent.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def is_running(self, workload_id: str) -> bool:
        with self._lock:
            return workload_id in self._entries

    def get(self, workload_id: str) -> Optional[RegistryEntry]:
        with self._lock:
            return self._entries.get(workload_id)

    def register(self, workload_id: str, handle: Any, started_at: dt.datetime) -> bool:
        """Add an entry. Returns False, changing nothing, if one already exists."""
        with self._lock:
            if workload_id in self._entries:
                return False
            self._entries[workload_id] = RegistryEntry(workload_id, handle, started_at)
            return True

    def unregister(self, workload_id: str, handle: Any = None) -> Optional[RegistryEntry]:
        """Remove and return the entry for ``workload_id``.

        With ``handle`` given, the entry is removed only if it still belongs
        to that handle.
        """
        with self._lock:
            entry = self._entries.get(workload_id)
            if entry is None:
                return None
            if handle is not None and entry.handle is not handle:
                return None
            del self._entries[workload_id]
            return entry

    def ids(self) -> list[str]:
        with self._lock:
            return sort_ids(self._entries)

    def snapshot(self, extra_ids: Iterable[str] = ()) -> list[tuple[str, Optional[RegistryEntry]]]:
        """Point-in-time ``(id, entry or None)`` rows, numerically ordered.

        ``extra_ids`` are known workloads that appear as stopped rows unless
        they are registered.
        """
        with self._lock:
            entries = dict(self._entries)
        return [(wid, entries.get(wid)) for wid in sort_ids([*entries, *extra_ids])]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
