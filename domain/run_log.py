from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class RunLogEntry:
    id: str
    timestamp: datetime
    level: LogLevel
    message: str
    scenario_index: Optional[int] = None
