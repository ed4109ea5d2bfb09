# domain/run.py
from __future__ import annotations

from dataclasses import dataclass, field
from threading import Event
from typing import Any, Dict, Iterable, Optional

from domain.api_response import ApiResponse
from domain.fixture_override import DEFAULT_FIXTURE_OVERRIDES, FixtureOverrideTable
from domain.scenario import TestScenario
from domain.settings import TesterSettings


@dataclass
class ScenarioReferenceEntry:
    post: Optional[Dict[str, Any]] = None
    request: Optional[Dict[str, str]] = None
    response: Optional[ApiResponse] = None

    def source(self, name: str) -> Any:
        if name == "post":
            return self.post
        if name == "request":
            return self.request
        if name == "response":
            return self.response.as_dict() if self.response is not None else None
        return None


ReferenceTable = Dict[str, ScenarioReferenceEntry]


class CancellationToken:
    """Cooperative stop flag, checked only between scenarios."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunContext:
    """
    Chain state owned by exactly one run.
    """
    run_id: str = ""
    previous_merchant_prepare_id: str = ""
    merchant_prepare_id_by_correlation_id: Dict[str, str] = field(default_factory=dict)
    references: ReferenceTable = field(default_factory=dict)
    fixture_overrides: FixtureOverrideTable = field(default_factory=lambda: dict(DEFAULT_FIXTURE_OVERRIDES))
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def seed(
        cls,
        scenarios: Iterable[TestScenario],
        settings: TesterSettings,
        *,
        run_id: str = "",
        fixture_overrides: Optional[FixtureOverrideTable] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> "RunContext":
        # 読み込み済みシナリオの前回結果から参照テーブルを組み立てる
        references: ReferenceTable = {}
        for item in scenarios:
            correlation_id = item.correlation_id
            if not correlation_id:
                continue
            references[correlation_id] = ScenarioReferenceEntry(
                post=item.post,
                request=item.request_payload,
                response=item.response,
            )

        return cls(
            run_id=run_id,
            previous_merchant_prepare_id=settings.preset_merchant_prepare_id or "",
            references=references,
            fixture_overrides=dict(DEFAULT_FIXTURE_OVERRIDES if fixture_overrides is None else fixture_overrides),
            cancellation=cancellation or CancellationToken(),
        )

    def register_request(self, correlation_id: str, post: Dict[str, Any], request: Dict[str, str]) -> None:
        if not correlation_id:
            return
        entry = self.references.setdefault(correlation_id, ScenarioReferenceEntry())
        entry.post = post
        entry.request = request

    def register_response(
        self,
        correlation_id: str,
        post: Dict[str, Any],
        request: Dict[str, str],
        response: Optional[ApiResponse],
    ) -> None:
        if not correlation_id:
            return
        self.references[correlation_id] = ScenarioReferenceEntry(post=post, request=request, response=response)

    def remember_prepare_id(self, correlation_id: str, prepare_id: str) -> None:
        self.previous_merchant_prepare_id = prepare_id
        if correlation_id:
            self.merchant_prepare_id_by_correlation_id[correlation_id] = prepare_id
