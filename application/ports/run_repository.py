from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from domain.run_record import RunRecord, RunStatus


class RunRepositoryPort(ABC):
    @abstractmethod
    def create(self, record: RunRecord) -> None:
        ...

    @abstractmethod
    def get(self, run_id: str) -> Optional[RunRecord]:
        ...

    @abstractmethod
    def transition_status(
        self,
        run_id: str,
        expected: RunStatus,
        new_status: RunStatus,
        summary: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> RunRecord:
        ...
