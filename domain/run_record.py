# domain/run_record.py
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def finished(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED)


@dataclass(frozen=True)
class RunRecord:
    """
    Bookkeeping for one scheduled run. ``scenario_idx`` is None for a full run.
    """
    run_id: str
    scenario_idx: Optional[int]
    status: RunStatus
    created_at: datetime
    updated_at: datetime
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def with_status(
        self,
        status: RunStatus,
        updated_at: datetime,
        summary: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> "RunRecord":
        return replace(
            self,
            status=status,
            updated_at=updated_at,
            summary=summary if summary is not None else self.summary,
            error=error if error is not None else self.error,
        )
