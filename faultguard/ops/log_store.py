import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..common.errors import LogEntry, StructuredError, utc_now

RECENT_WINDOW = timedelta(hours=1)


@dataclass
class ErrorStats:
    total: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    recent_last_hour: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "by_kind": dict(self.by_kind),
            "by_severity": dict(self.by_severity),
            "recent_last_hour": self.recent_last_hour,
        }


class BoundedErrorLog:
    """
    Append-only history of handled faults capped at `capacity` entries.
    Appending beyond capacity evicts the oldest entries first.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, error: StructuredError) -> LogEntry:
        entry = LogEntry(error=error, handled=True, reported_to_service=False)
        with self._lock:
            self._entries.append(entry)
        return entry

    def mark_reported(self, entry: LogEntry) -> bool:
        """
        Flag this exact entry as delivered to the sink. Entries are matched by
        identity since a re-handled error keeps its id. False if it was evicted.
        """
        with self._lock:
            if not any(candidate is entry for candidate in self._entries):
                return False
            entry.reported_to_service = True
        return True

    def snapshot(self) -> List[LogEntry]:
        with self._lock:
            return [replace(entry) for entry in self._entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self, now: Optional[datetime] = None) -> ErrorStats:
        cutoff = (now or utc_now()) - RECENT_WINDOW
        stats = ErrorStats()
        for entry in self.snapshot():
            stats.total += 1
            kind = entry.kind.value
            severity = entry.severity.value
            stats.by_kind[kind] = stats.by_kind.get(kind, 0) + 1
            stats.by_severity[severity] = stats.by_severity.get(severity, 0) + 1
            if entry.timestamp > cutoff:
                stats.recent_last_hour += 1
        return stats
