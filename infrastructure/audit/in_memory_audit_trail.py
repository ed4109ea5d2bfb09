# infrastructure/audit/in_memory_audit_trail.py
from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, List

from application.http_trace import AuditEntry
from application.ports.audit_trail import AuditTrailPort

MAX_AUDIT_ENTRIES = 500


class InMemoryAuditTrail(AuditTrailPort):
    """Keeps only the most recent entries."""

    def __init__(self, max_entries: int = MAX_AUDIT_ENTRIES) -> None:
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def list(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
