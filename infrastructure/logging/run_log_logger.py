from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from loguru import logger

from application.ports.run_log_store import RunLogStorePort
from application.ports.tester_log import TesterLogPort
from domain.run_log import LogLevel, RunLogEntry

_LOGURU_LEVELS = {
    LogLevel.INFO: "INFO",
    LogLevel.SUCCESS: "SUCCESS",
    LogLevel.ERROR: "ERROR",
}


class RunLogTesterLog(TesterLogPort):
    """
    Store tester log lines and mirror them to loguru (console / testing.log).
    """

    def __init__(self, log_store: RunLogStorePort, mirror: bool = True):
        self._store = log_store
        self._mirror = mirror

    def info(self, message: str, scenario_index: Optional[int] = None) -> None:
        self._emit(LogLevel.INFO, message, scenario_index)

    def success(self, message: str, scenario_index: Optional[int] = None) -> None:
        self._emit(LogLevel.SUCCESS, message, scenario_index)

    def error(self, message: str, scenario_index: Optional[int] = None) -> None:
        self._emit(LogLevel.ERROR, message, scenario_index)

    def entries(self) -> List[RunLogEntry]:
        return self._store.list()

    def clear(self) -> None:
        self._store.clear()

    def _emit(self, level: LogLevel, message: str, scenario_index: Optional[int]) -> None:
        entry = RunLogEntry(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            scenario_index=scenario_index,
        )
        self._store.append(entry)
        if self._mirror:
            logger.bind(tester_log=True, scenario_index=scenario_index).log(_LOGURU_LEVELS[level], message)
