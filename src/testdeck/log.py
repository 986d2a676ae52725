from __future__ import annotations

import logging
import threading
from typing import Any, Iterator

from testdeck.errors import CapacityExceededError
from testdeck.models import SessionEntry

logger = logging.getLogger(__name__)


class LogView:
    """Restartable read-only view over a SessionLog.

    Every iteration starts from the oldest entry and stops at the entries
    that were present when that iteration began.
    """

    def __init__(self, log: SessionLog):
        self._log = log

    def __iter__(self) -> Iterator[SessionEntry]:
        return iter(self._log.snapshot())

    def __len__(self) -> int:
        return len(self._log)

    def __bool__(self) -> bool:
        return len(self._log) > 0


class SessionLog:
    def __init__(self, max_entries: int | None = None):
        if max_entries is not None and max_entries < 2:
            raise ValueError("max_entries must be at least 2")
        self.max_entries = max_entries
        self._entries: list[SessionEntry] = []
        self._ids: set[str] = set()
        self._pinned: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: SessionEntry) -> bool:
        with self._lock:
            if entry.id in self._ids:
                logger.debug(f"Ignoring duplicate session entry {entry.id}")
                return False
            if self.max_entries is not None and len(self._entries) >= self.max_entries:
                self._evict_one()
            self._entries.append(entry)
            self._ids.add(entry.id)
        return True

    def _evict_one(self) -> None:
        for idx, existing in enumerate(self._entries):
            if existing.id in self._pinned:
                continue
            del self._entries[idx]
            self._ids.discard(existing.id)
            logger.debug(f"Evicted session entry {existing.id}")
            return
        raise CapacityExceededError(self.max_entries or 0)

    def pin(self, entry_id: str) -> None:
        with self._lock:
            self._pinned.add(entry_id)

    def unpin(self, entry_id: str) -> None:
        with self._lock:
            self._pinned.discard(entry_id)

    def all(self) -> LogView:
        return LogView(self)

    def snapshot(self) -> tuple[SessionEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def last(self) -> SessionEntry | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._ids = set()
            self._pinned = set()

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_entries": self.max_entries,
            "entries": [entry.model_dump(mode="json") for entry in self.snapshot()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionLog:
        log = cls(max_entries=data.get("max_entries"))
        for raw in data.get("entries", []):
            log.append(SessionEntry.model_validate(raw))
        return log
