from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, List

from application.ports.run_log_store import RunLogStorePort
from domain.run_log import RunLogEntry

MAX_LOG_ENTRIES = 500


class InMemoryRunLogStore(RunLogStorePort):
    def __init__(self, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self._logs: Deque[RunLogEntry] = deque(maxlen=max_entries)
        self._lock = Lock()

    def append(self, entry: RunLogEntry) -> None:
        with self._lock:
            self._logs.append(entry)

    def list(self) -> List[RunLogEntry]:
        with self._lock:
            return list(self._logs)

    def clear(self) -> None:
        with self._lock:
            self._logs.clear()
