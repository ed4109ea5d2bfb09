# application/ports/audit_trail.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from application.http_trace import AuditEntry


class AuditTrailPort(ABC):
    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    def list(self) -> List[AuditEntry]:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...
