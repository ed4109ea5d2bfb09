from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import pytest
import requests

from application.executor.scenario_engine import ScenarioEngine, arm
from application.ports.http_client import HttpResponse
from application.services.execution_deps import ExecutionDeps
from application.services.http_dispatcher import HttpDispatcher
from application.services.request_context_builder import RequestContextBuilder
from application.services.response_classifier import ResponseClassifier
from application.services.template_renderer import TemplateRenderer
from domain.run import RunContext
from domain.scenario import ScenarioAction, ScenarioDefinition, ScenarioStatus, TestScenario
from domain.settings import TesterSettings
from infrastructure.audit.in_memory_audit_trail import InMemoryAuditTrail
from infrastructure.logging.console_logger import ConsoleLogger
from infrastructure.url.endpoint_url_resolver import EndpointUrlResolver
from mock_http_client import FakeTesterLog, MockHttpClient, json_response, text_response

PREPARE_URL = "https://pay.example.com/prepare"
COMPLETE_URL = "https://pay.example.com/complete"

SETTINGS = TesterSettings(
    prepare_url=PREPARE_URL,
    complete_url=COMPLETE_URL,
    service_id="100",
    secret_key="s3cret",
    amount="1000",
)


class MutableSettingsProvider:
    def __init__(self, settings: TesterSettings):
        self.settings = settings
        self.reads = 0

    def get(self) -> TesterSettings:
        self.reads += 1
        return self.settings


def _scenario(idx: int, action: ScenarioAction, post: dict, expected: int = 0) -> TestScenario:
    return TestScenario(
        idx=idx,
        definition=ScenarioDefinition(
            description=f"scenario {idx}",
            action=action,
            sending_error_code=0,
            expected_error_code=expected,
            post=post,
        ),
    )


def _engine(client: MockHttpClient) -> ScenarioEngine:
    builder = RequestContextBuilder(
        TemplateRenderer(),
        EndpointUrlResolver(),
        clock=lambda: datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    return ScenarioEngine(builder, HttpDispatcher(client, InMemoryAuditTrail()))


def _deps(settings=SETTINGS, tester_log=None) -> ExecutionDeps:
    provider = settings if isinstance(settings, MutableSettingsProvider) else MutableSettingsProvider(settings)
    return ExecutionDeps(settings_provider=provider, logger=ConsoleLogger(), tester_log=tester_log or FakeTesterLog())


def _run(client: MockHttpClient, scenarios: List[TestScenario], deps=None, ctx=None):
    ctx = ctx or RunContext.seed(scenarios, SETTINGS)
    queue = arm(scenarios)
    summary = _engine(client).run(queue, ctx, deps or _deps())
    return summary, ctx


def test_end_to_end_prepare_then_complete_chains_prepare_id() -> None:
    # Arrange
    def handler(url, form):
        if url == PREPARE_URL:
            return json_response(url, {"error": 0, "merchant_prepare_id": "55"})
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)
    first = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "50001", "action": "0"})
    second = _scenario(1, ScenarioAction.COMPLETE, {"click_trans_id": "50002", "action": "1", "merchant_prepare_id": ""})

    # Act
    summary, _ = _run(client, [first, second])

    # Assert
    assert first.status == ScenarioStatus.SUCCESS
    assert second.status == ScenarioStatus.SUCCESS
    assert client.forms[1]["merchant_prepare_id"] == "55"
    assert second.request_payload["merchant_prepare_id"] == "55"
    assert summary.ok is True
    assert summary.succeeded == 2


def test_chaining_uses_latest_successful_prepare_id() -> None:
    responses = iter(
        [
            {"error": 0, "merchant_prepare_id": "P123"},
            {"error": 0, "merchant_prepare_id": 999},
            {"error": 0, "merchant_prepare_id": "IGNORED"},
            {"error": 0},
        ]
    )
    client = MockHttpClient(lambda url, form: json_response(url, next(responses)))
    scenarios = [
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "60001"}),
        _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "60002"}),
        _scenario(2, ScenarioAction.COMPLETE, {"click_trans_id": "60003", "merchant_prepare_id": "X1"}),
        _scenario(3, ScenarioAction.COMPLETE, {"click_trans_id": "60004"}),
    ]

    _, ctx = _run(client, scenarios)

    # 数値の merchant_prepare_id と complete の応答はチェーンを更新しない
    assert client.forms[3]["merchant_prepare_id"] == "P123"
    assert ctx.previous_merchant_prepare_id == "P123"
    assert ctx.merchant_prepare_id_by_correlation_id == {"60001": "P123"}


def test_prepare_id_by_correlation_id_feeds_fixture() -> None:
    def handler(url, form):
        if form.get("click_trans_id") == "18409":
            return json_response(url, {"error": 0, "merchant_prepare_id": "FROM-18409"})
        if form.get("click_trans_id") == "18410":
            return json_response(url, {"error": 0, "merchant_prepare_id": "LATEST"})
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)
    scenarios = [
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "18409"}),
        _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "18410"}),
        _scenario(2, ScenarioAction.COMPLETE, {"click_trans_id": "11994"}),
    ]

    _run(client, scenarios)

    assert client.forms[2]["merchant_prepare_id"] == "FROM-18409"


def test_http_500_marks_error_and_run_continues() -> None:
    def handler(url, form):
        if form["click_trans_id"] == "1":
            return HttpResponse(status=500, url=url, text="boom", headers={}, reason="Internal Server Error")
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)
    failing = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    following = _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "2"})

    summary, _ = _run(client, [failing, following])

    assert failing.status == ScenarioStatus.ERROR
    assert "500" in failing.error_message
    assert failing.finished_at is not None
    assert failing.duration_ms is not None
    assert failing.request_payload["click_trans_id"] == "1"
    assert following.status == ScenarioStatus.SUCCESS
    assert summary.failed == 1
    assert summary.succeeded == 1
    assert summary.ok is False


def test_non_json_body_marks_error() -> None:
    client = MockHttpClient(lambda url, form: text_response(url, "OK"))
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})

    _run(client, [scenario])

    assert scenario.status == ScenarioStatus.ERROR
    assert "not a JSON object" in scenario.error_message
    assert scenario.raw_response == "OK"


def test_network_error_marks_error() -> None:
    def handler(url, form):
        raise requests.ConnectionError("Connection refused")

    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})

    _run(MockHttpClient(handler), [scenario])

    assert scenario.status == ScenarioStatus.ERROR
    assert scenario.error_message.startswith("Network request failed")
    assert scenario.response is None


def test_missing_endpoint_url_marks_error() -> None:
    settings = TesterSettings(prepare_url="", complete_url=COMPLETE_URL, service_id="1", secret_key="k")
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    client = MockHttpClient()

    _run(client, [scenario], deps=_deps(settings))

    assert scenario.status == ScenarioStatus.ERROR
    assert client.calls == []


def test_code_mismatch_message_and_log_lines() -> None:
    tester_log = FakeTesterLog()
    client = MockHttpClient(lambda url, form: json_response(url, {"error": -1}))
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"}, expected=-2)

    _run(client, [scenario], deps=_deps(tester_log=tester_log))

    assert scenario.error_message == "Expected code -2, got -1."
    assert scenario.actual_error_code == -1
    assert tester_log.messages("info")[:2] == ["Testing started.", "[1] scenario 0 (prepare)"]
    assert tester_log.messages("error") == ["[1] scenario 0 - failed: Expected code -2, got -1."]
    assert tester_log.lines[-1][2] == 0


def test_success_log_line() -> None:
    tester_log = FakeTesterLog()
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})

    _run(MockHttpClient(), [scenario], deps=_deps(tester_log=tester_log))

    assert tester_log.messages("success") == ["[1] scenario 0 - passed (code 0)"]


def test_cancel_during_scenario_lets_it_finish_and_skips_the_rest() -> None:
    # Arrange
    tester_log = FakeTesterLog()
    scenarios = [
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"}),
        _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "2"}),
        _scenario(2, ScenarioAction.PREPARE, {"click_trans_id": "3"}),
    ]
    ctx = RunContext.seed(scenarios, SETTINGS)

    def handler(url, form):
        ctx.cancellation.cancel()
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)

    # Act
    summary, _ = _run(client, scenarios, deps=_deps(tester_log=tester_log), ctx=ctx)

    # Assert
    assert len(client.calls) == 1
    assert scenarios[0].status == ScenarioStatus.SUCCESS
    assert scenarios[1].status == ScenarioStatus.QUEUED
    assert scenarios[2].status == ScenarioStatus.QUEUED
    assert summary.cancelled is True
    assert summary.started == 1
    assert "Remaining scenarios were skipped after the queue was stopped." in tester_log.messages("info")


def test_cancel_before_start_runs_nothing() -> None:
    tester_log = FakeTesterLog()
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    ctx = RunContext.seed([scenario], SETTINGS)
    ctx.cancellation.cancel()
    client = MockHttpClient()

    summary, _ = _run(client, [scenario], deps=_deps(tester_log=tester_log), ctx=ctx)

    assert client.calls == []
    assert scenario.status == ScenarioStatus.QUEUED
    assert summary.started == 0
    assert "Execution stopped by the user." in tester_log.messages("info")


def test_later_scenarios_reference_earlier_request_and_response() -> None:
    def handler(url, form):
        if form["click_trans_id"] == "70001":
            return json_response(url, {"error": 0, "merchant_prepare_id": "R1", "note": {"id": 9}})
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)
    scenarios = [
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "70001", "merchant_trans_id": "m-1"}),
        _scenario(
            1,
            ScenarioAction.PREPARE,
            {
                "click_trans_id": "70002",
                "ref_request": "{{request.70001.merchant_trans_id}}",
                "ref_response": "{{scenario.70001.response.note.id}}",
                "ref_self": "{{post.70002.click_trans_id}}",
            },
        ),
    ]

    _, ctx = _run(client, scenarios)

    second = client.forms[1]
    assert second["ref_request"] == "m-1"
    assert second["ref_response"] == "9"
    # post は読み込み時点で参照テーブルに入っている
    assert second["ref_self"] == "70002"
    assert ctx.references["70002"].response.error == 0


def test_order_is_ascending_idx() -> None:
    client = MockHttpClient()
    scenarios = [
        _scenario(2, ScenarioAction.PREPARE, {"click_trans_id": "c"}),
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "a"}),
        _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "b"}),
    ]

    _run(client, scenarios)

    assert [form["click_trans_id"] for form in client.forms] == ["a", "b", "c"]


def test_settings_are_read_for_every_scenario() -> None:
    provider = MutableSettingsProvider(SETTINGS)
    urls = []

    def handler(url, form):
        urls.append(url)
        provider.settings = TesterSettings(**{**SETTINGS.to_dict(), "prepare_url": "https://other.example.com/p"})
        return json_response(url, {"error": 0})

    scenarios = [
        _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"}),
        _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "2"}),
    ]

    _run(MockHttpClient(handler), scenarios, deps=_deps(provider))

    assert urls == [PREPARE_URL, "https://other.example.com/p"]


def test_arm_resets_previous_results() -> None:
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    scenario.status = ScenarioStatus.ERROR
    scenario.error_message = "old"
    scenario.duration_ms = 10

    queue = arm([scenario])

    assert queue == [scenario]
    assert scenario.status == ScenarioStatus.QUEUED
    assert scenario.error_message is None
    assert scenario.duration_ms is None


def test_oversized_integer_error_code_fails_only_that_scenario() -> None:
    huge = int("1" + "0" * 400)

    def handler(url, form):
        if form["click_trans_id"] == "1":
            return json_response(url, {"error": huge})
        return json_response(url, {"error": 0})

    client = MockHttpClient(handler)
    oversized = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    following = _scenario(1, ScenarioAction.PREPARE, {"click_trans_id": "2"})

    summary, _ = _run(client, [oversized, following])

    assert oversized.status == ScenarioStatus.ERROR
    assert oversized.error_message.startswith("Expected code 0, got 1000")
    assert oversized.finished_at is not None
    assert oversized.duration_ms is not None
    assert following.status == ScenarioStatus.SUCCESS
    assert summary.failed == 1
    assert summary.succeeded == 1


def test_unexpected_classifier_failure_still_finishes_scenario() -> None:
    class BrokenClassifier(ResponseClassifier):
        def classify(self, result, url, expected_error_code):
            raise RuntimeError("classifier bug")

    builder = RequestContextBuilder(TemplateRenderer(), EndpointUrlResolver())
    engine = ScenarioEngine(builder, HttpDispatcher(MockHttpClient(), InMemoryAuditTrail()), classifier=BrokenClassifier())
    scenario = _scenario(0, ScenarioAction.PREPARE, {"click_trans_id": "1"})
    queue = arm([scenario])

    with pytest.raises(RuntimeError, match="classifier bug"):
        engine.run(queue, RunContext.seed(queue, SETTINGS), _deps())

    assert scenario.status == ScenarioStatus.ERROR
    assert scenario.error_message == "classifier bug"
    assert scenario.finished_at is not None
    assert scenario.request_payload["click_trans_id"] == "1"
