# application/executor/scenario_engine.py
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from application.exceptions import DispatchError
from application.http_trace import AuditContext
from application.outcome import ScenarioOutcome
from application.services.execution_deps import ExecutionDeps
from application.services.http_dispatcher import HttpDispatcher
from application.services.redactor import mask_dict
from application.services.request_context_builder import RequestContext, RequestContextBuilder
from application.services.response_classifier import ResponseClassifier
from domain.run import RunContext
from domain.scenario import ScenarioAction, TestScenario


@dataclass(frozen=True)
class RunSummary:
    run_id: str
    total: int
    started: int
    succeeded: int
    failed: int
    cancelled: bool

    @property
    def ok(self) -> bool:
        return not self.cancelled and self.failed == 0 and self.started == self.total


def arm(scenarios: Iterable[TestScenario]) -> List[TestScenario]:
    """実行前に queued へ戻し、前回の結果をクリアする"""
    queue = sorted(scenarios, key=lambda s: s.idx)
    for scenario in queue:
        scenario.reset_for_queue()
    return queue


class ScenarioEngine:
    """
    Run scenarios strictly one after another.

    Each scenario sees the references and prepare ids captured by the
    scenarios that finished before it. The cancellation token is checked
    before a scenario starts and right after it finishes; a request that is
    already in flight is never aborted.
    """

    def __init__(
        self,
        builder: RequestContextBuilder,
        dispatcher: HttpDispatcher,
        classifier: Optional[ResponseClassifier] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._builder = builder
        self._dispatcher = dispatcher
        self._classifier = classifier or ResponseClassifier()
        self._clock = clock

    def run(self, queue: List[TestScenario], ctx: RunContext, deps: ExecutionDeps) -> RunSummary:
        if not ctx.run_id:
            ctx.run_id = uuid.uuid4().hex

        deps = deps.with_logger(deps.logger.bind(run_id=ctx.run_id))
        deps.logger.info("run.start", scenarios=len(queue))
        deps.tester_log.info("Testing started.")

        started = succeeded = failed = 0
        cancelled = False

        for scenario in sorted(queue, key=lambda s: s.idx):
            if ctx.cancellation.cancelled:
                deps.tester_log.info("Execution stopped by the user.")
                cancelled = True
                break

            started += 1
            outcome = self._run_one(scenario, ctx, deps)
            if outcome.ok:
                succeeded += 1
            else:
                failed += 1

            if ctx.cancellation.cancelled:
                if started < len(queue):
                    deps.tester_log.info("Remaining scenarios were skipped after the queue was stopped.")
                cancelled = True
                break

        summary = RunSummary(
            run_id=ctx.run_id,
            total=len(queue),
            started=started,
            succeeded=succeeded,
            failed=failed,
            cancelled=cancelled,
        )
        deps.logger.info(
            "run.end",
            total=summary.total,
            started=summary.started,
            succeeded=summary.succeeded,
            failed=summary.failed,
            cancelled=summary.cancelled,
        )
        return summary

    def _run_one(self, scenario: TestScenario, ctx: RunContext, deps: ExecutionDeps) -> ScenarioOutcome:
        started_at = self._clock()
        t0 = time.perf_counter()
        scenario.mark_running(started_at)

        deps.tester_log.info(
            f"[{scenario.idx + 1}] {scenario.description} ({scenario.action.value})",
            scenario_index=scenario.idx,
        )
        deps.logger.info("scenario.start", idx=scenario.idx, action=scenario.action.value)

        request: Optional[RequestContext] = None
        correlation_id = ""
        try:
            request = self._builder.build(
                scenario,
                deps.settings(),
                ctx.previous_merchant_prepare_id,
                ctx.merchant_prepare_id_by_correlation_id,
                ctx.references,
                ctx.fixture_overrides,
            )
            correlation_id = (request.payload.get("click_trans_id") or "").strip()
            ctx.register_request(correlation_id, scenario.post, request.payload)

            deps.logger.debug("http.request", idx=scenario.idx, url=request.url, form=mask_dict(request.payload))
            result = self._dispatcher.send(
                request.url,
                request.payload,
                AuditContext(
                    context="scenario request",
                    scenario_idx=scenario.idx,
                    scenario_action=scenario.action.value,
                    scenario_description=scenario.description,
                ),
            )
            deps.logger.info("http.response", idx=scenario.idx, status=result.status, final_url=result.effective_url)

            outcome = self._classifier.classify(result, request.url, scenario.expected_error_code)
            self._chain_prepare_id(scenario, outcome, correlation_id, ctx, deps)
        except DispatchError as e:
            deps.logger.error("http.dispatch_failed", idx=scenario.idx, error=str(e))
            outcome = self._classifier.classify_failure(e)
        except Exception as e:
            # running のまま残さない。例外自体は呼び出し側へ
            deps.logger.error("scenario.crashed", idx=scenario.idx, error=repr(e))
            self._finish(scenario, self._classifier.classify_failure(e), request, started_at, t0, deps)
            raise

        self._finish(scenario, outcome, request, started_at, t0, deps)

        if request is not None:
            ctx.register_response(correlation_id, scenario.post, request.payload, outcome.response)
        return outcome

    def _chain_prepare_id(
        self,
        scenario: TestScenario,
        outcome: ScenarioOutcome,
        correlation_id: str,
        ctx: RunContext,
        deps: ExecutionDeps,
    ) -> None:
        if scenario.action != ScenarioAction.PREPARE or outcome.response is None:
            return
        prepare_id = outcome.response.prepare_id()
        if prepare_id:
            ctx.remember_prepare_id(correlation_id, prepare_id)
            deps.logger.debug("chain.prepare_id", idx=scenario.idx, merchant_prepare_id=prepare_id)

    def _finish(
        self,
        scenario: TestScenario,
        outcome: ScenarioOutcome,
        request: Optional[RequestContext],
        started_at: datetime,
        t0: float,
        deps: ExecutionDeps,
    ) -> None:
        if outcome.ok:
            deps.tester_log.success(
                f"[{scenario.idx + 1}] {scenario.description} - passed (code {outcome.actual_error_code})",
                scenario_index=scenario.idx,
            )
        else:
            deps.tester_log.error(
                f"[{scenario.idx + 1}] {scenario.description} - failed: {outcome.error_message or 'no details'}",
                scenario_index=scenario.idx,
            )

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        scenario.status = outcome.status
        scenario.response = outcome.response
        scenario.raw_response = outcome.raw_response
        scenario.error_message = outcome.error_message
        scenario.request_payload = request.payload if request is not None else None
        scenario.actual_error_code = outcome.actual_error_code
        scenario.finished_at = self._clock()
        scenario.duration_ms = elapsed_ms

        deps.logger.info(
            "scenario.end",
            idx=scenario.idx,
            status=outcome.status.value,
            actual_error_code=outcome.actual_error_code,
            elapsed_ms=elapsed_ms,
        )
