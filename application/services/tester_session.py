# application/services/tester_session.py
from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import List, Optional, Sequence

from application.exceptions import RunInProgressError, ScenarioNotFoundError
from application.executor.scenario_engine import RunSummary, ScenarioEngine, arm
from application.ports.audit_trail import AuditTrailPort
from application.services.execution_deps import ExecutionDeps
from application.services.settings_validator import RunPreconditionValidator
from domain.exceptions import ValidationError
from domain.fixture_override import DEFAULT_FIXTURE_OVERRIDES, FixtureOverrideTable
from domain.run import CancellationToken, RunContext
from domain.scenario import ScenarioDefinition, ScenarioSet, TestScenario


@dataclass(frozen=True)
class PreparedRun:
    queue: List[TestScenario]
    ctx: RunContext


class TesterSession:
    """
    Owns the loaded scenario board and guards it: only one run at a time,
    configuration checked before a run starts, no edits while running.
    """

    def __init__(
        self,
        engine: ScenarioEngine,
        deps: ExecutionDeps,
        audit_trail: Optional[AuditTrailPort] = None,
        validator: Optional[RunPreconditionValidator] = None,
    ):
        self._engine = engine
        self._deps = deps
        self._audit = audit_trail
        self._validator = validator or RunPreconditionValidator()
        self._lock = Lock()
        self._running = False
        self._cancellation = CancellationToken()
        self._scenarios: List[TestScenario] = []
        self._fixture_overrides: FixtureOverrideTable = dict(DEFAULT_FIXTURE_OVERRIDES)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def fixture_overrides(self) -> FixtureOverrideTable:
        return dict(self._fixture_overrides)

    def scenarios(self) -> List[TestScenario]:
        return list(self._scenarios)

    def get(self, idx: int) -> TestScenario:
        for scenario in self._scenarios:
            if scenario.idx == idx:
                return scenario
        raise ScenarioNotFoundError(f"Scenario not found: {idx}")

    def load(self, scenario_set: ScenarioSet) -> List[TestScenario]:
        self._ensure_idle("Cannot load scenarios while testing is running.")
        self._scenarios = scenario_set.to_test_scenarios()
        self._fixture_overrides = dict(scenario_set.fixture_overrides)
        self._deps.tester_log.info(f"Scenarios loaded: {len(self._scenarios)}")
        return self.scenarios()

    def replace(self, definitions: Sequence[ScenarioDefinition]) -> List[TestScenario]:
        # 保存時は並び順どおりに idx を振り直す
        self._ensure_idle("Cannot edit scenarios while testing is running.")
        self._scenarios = [TestScenario(idx=i, definition=d) for i, d in enumerate(definitions)]
        self._deps.tester_log.info(f"Scenarios saved: {len(self._scenarios)}")
        return self.scenarios()

    def prepare_full_run(self) -> PreparedRun:
        return self._prepare(None)

    def prepare_single_run(self, idx: int) -> PreparedRun:
        return self._prepare(idx)

    def execute(self, prepared: PreparedRun) -> RunSummary:
        try:
            return self._engine.run(prepared.queue, prepared.ctx, self._deps)
        finally:
            with self._lock:
                self._running = False
            self._cancellation.reset()

    def start_all(self) -> RunSummary:
        return self.execute(self.prepare_full_run())

    def run_one(self, idx: int) -> RunSummary:
        return self.execute(self.prepare_single_run(idx))

    def stop(self) -> bool:
        if not self.is_running:
            return False
        self._cancellation.cancel()
        self._deps.tester_log.info("Queue stop requested.")
        return True

    def clear_logs(self) -> None:
        self._deps.tester_log.clear()
        if self._audit is not None:
            self._audit.clear()

    def _prepare(self, idx: Optional[int]) -> PreparedRun:
        with self._lock:
            if self._running:
                self._deps.tester_log.error("Testing is already running, wait for it to finish.")
                raise RunInProgressError("A run is already in progress")

            settings = self._deps.settings()
            try:
                if idx is None:
                    self._validator.validate(settings, self._scenarios)
                else:
                    self._validator.validate_settings(settings)
            except ValidationError as e:
                self._deps.tester_log.error(str(e))
                raise

            targets = self._scenarios if idx is None else [self.get(idx)]

            # 参照テーブルは queued に戻す前の結果から作る
            self._cancellation.reset()
            ctx = RunContext.seed(
                self._scenarios,
                settings,
                fixture_overrides=self._fixture_overrides,
                cancellation=self._cancellation,
            )
            queue = arm(targets)
            self._running = True
            return PreparedRun(queue=queue, ctx=ctx)

    def _ensure_idle(self, message: str) -> None:
        if self.is_running:
            self._deps.tester_log.error(message)
            raise RunInProgressError(message)
