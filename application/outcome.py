# application/outcome.py
from dataclasses import dataclass
from typing import Optional, Union

from domain.api_response import ApiResponse
from domain.scenario import ScenarioStatus

ErrorCode = Union[int, float, str]


@dataclass(frozen=True)
class ScenarioOutcome:
    status: ScenarioStatus
    response: Optional[ApiResponse] = None
    raw_response: str = ""
    actual_error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ScenarioStatus.SUCCESS
