from __future__ import annotations

from datetime import datetime, timezone

import pytest

from domain.api_response import ApiResponse
from domain.scenario import ScenarioAction, ScenarioDefinition, ScenarioSet, ScenarioStatus, TestScenario


@pytest.mark.parametrize(
    "value, expected",
    [
        ("complete", ScenarioAction.COMPLETE),
        (" complete ", ScenarioAction.COMPLETE),
        ("prepare", ScenarioAction.PREPARE),
        ("Complete", ScenarioAction.PREPARE),
        ("refund", ScenarioAction.PREPARE),
        (None, ScenarioAction.PREPARE),
        (ScenarioAction.COMPLETE, ScenarioAction.COMPLETE),
    ],
)
def test_action_normalize(value, expected) -> None:
    assert ScenarioAction.normalize(value) is expected


def test_correlation_id_is_trimmed_click_trans_id() -> None:
    definition = ScenarioDefinition("d", ScenarioAction.PREPARE, 0, 0, post={"click_trans_id": 18409})

    assert definition.correlation_id == "18409"
    assert ScenarioDefinition("d", ScenarioAction.PREPARE, 0, 0).correlation_id == ""


def test_scenario_set_assigns_indexes() -> None:
    scenario_set = ScenarioSet([ScenarioDefinition("a", ScenarioAction.PREPARE, 0, 0), ScenarioDefinition("b", ScenarioAction.COMPLETE, 0, -1)])

    scenarios = scenario_set.to_test_scenarios()

    assert [(s.idx, s.description, s.status) for s in scenarios] == [
        (0, "a", ScenarioStatus.IDLE),
        (1, "b", ScenarioStatus.IDLE),
    ]


def test_lifecycle_and_to_dict() -> None:
    scenario = TestScenario(idx=0, definition=ScenarioDefinition("a", ScenarioAction.COMPLETE, -5017, -9, post={"x": 1}))
    started = datetime(2024, 1, 1, tzinfo=timezone.utc)

    scenario.reset_for_queue()
    assert scenario.status == ScenarioStatus.QUEUED
    scenario.mark_running(started)
    scenario.response = ApiResponse(error=-9)

    data = scenario.to_dict()
    assert data["status"] == "running"
    assert data["action"] == "complete"
    assert data["sending_error_code"] == -5017
    assert data["expected_error_code"] == -9
    assert data["started_at"] == "2024-01-01T00:00:00+00:00"
    assert data["response"] == {"error": -9}
    assert data["finished_at"] is None
