# application/ports/tester_log.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from domain.run_log import RunLogEntry


class TesterLogPort(ABC):
    """
    User-facing run log (info / success / error lines, optionally tied to a scenario).
    """

    @abstractmethod
    def info(self, message: str, scenario_index: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def success(self, message: str, scenario_index: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def error(self, message: str, scenario_index: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def entries(self) -> List[RunLogEntry]:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...
