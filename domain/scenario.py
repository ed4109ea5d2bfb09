# domain/scenario.py
"""
Scenario domain model
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from domain.api_response import ApiResponse
from domain.fixture_override import DEFAULT_FIXTURE_OVERRIDES, FixtureOverrideTable


class ScenarioAction(str, Enum):
    PREPARE = "prepare"
    COMPLETE = "complete"

    @classmethod
    def normalize(cls, value: Any) -> "ScenarioAction":
        # complete 以外はすべて prepare 扱い
        if isinstance(value, ScenarioAction):
            return value
        return cls.COMPLETE if str(value or "").strip() == cls.COMPLETE.value else cls.PREPARE


class ScenarioStatus(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ScenarioDefinition:
    """
    Immutable scenario template as loaded from a scenario file.
    """
    description: str
    action: ScenarioAction
    sending_error_code: int
    expected_error_code: int
    post: Dict[str, Any] = field(default_factory=dict)
    go_to_script: Optional[int] = None

    @property
    def correlation_id(self) -> str:
        return str(self.post.get("click_trans_id") or "").strip()


@dataclass
class TestScenario:
    """
    Working record of one scenario. The engine is the only writer of the
    result fields while a run is in progress.
    """
    __test__ = False

    idx: int
    definition: ScenarioDefinition
    status: ScenarioStatus = ScenarioStatus.IDLE
    request_payload: Optional[Dict[str, str]] = None
    response: Optional[ApiResponse] = None
    raw_response: Optional[str] = None
    actual_error_code: Optional[Union[int, float, str]] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    @property
    def description(self) -> str:
        return self.definition.description

    @property
    def action(self) -> ScenarioAction:
        return self.definition.action

    @property
    def post(self) -> Dict[str, Any]:
        return self.definition.post

    @property
    def expected_error_code(self) -> int:
        return self.definition.expected_error_code

    @property
    def sending_error_code(self) -> int:
        return self.definition.sending_error_code

    @property
    def correlation_id(self) -> str:
        return self.definition.correlation_id

    def reset_for_queue(self) -> None:
        self.status = ScenarioStatus.QUEUED
        self.request_payload = None
        self.response = None
        self.raw_response = None
        self.actual_error_code = None
        self.error_message = None
        self.started_at = None
        self.finished_at = None
        self.duration_ms = None

    def mark_running(self, started_at: datetime) -> None:
        self.status = ScenarioStatus.RUNNING
        self.started_at = started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "idx": self.idx,
            "description": self.description,
            "action": self.action.value,
            "sending_error_code": self.sending_error_code,
            "expected_error_code": self.expected_error_code,
            "go_to_script": self.definition.go_to_script,
            "post": dict(self.post),
            "status": self.status.value,
            "request_payload": self.request_payload,
            "response": self.response.as_dict() if self.response is not None else None,
            "raw_response": self.raw_response,
            "actual_error_code": self.actual_error_code,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class ScenarioSet:
    """
    Scenario definitions together with the fixture overrides shipped alongside them.
    """
    definitions: List[ScenarioDefinition]
    fixture_overrides: FixtureOverrideTable = field(default_factory=lambda: dict(DEFAULT_FIXTURE_OVERRIDES))

    def to_test_scenarios(self) -> List[TestScenario]:
        return [TestScenario(idx=i, definition=d) for i, d in enumerate(self.definitions)]
