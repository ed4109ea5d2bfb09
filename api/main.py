"""FastAPI アプリケーション - テスター REST API"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import requests
from fastapi import Body, FastAPI, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

import sys

# プロジェクトルートをPythonパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infrastructure.audit.in_memory_audit_trail import InMemoryAuditTrail
from infrastructure.logging.console_logger import ConsoleLogger
from infrastructure.logging.log_setup import add_testing_log_file
from infrastructure.logging.run_log_logger import RunLogTesterLog
from infrastructure.run.in_memory_run_log_store import InMemoryRunLogStore
from infrastructure.run.in_memory_run_repository import InMemoryRunRepository
from infrastructure.run.in_memory_run_scheduler import InMemoryRunScheduler
from infrastructure.scenario.base_loader import ScenarioLoadError, dump_definition
from infrastructure.scenario.file_finder import ScenarioFileFinder
from infrastructure.scenario.json_loader import JsonScenarioLoader
from infrastructure.scenario.loader_registry import ScenarioLoaderRegistry
from infrastructure.settings.env_settings_provider import EnvSettingsProvider
from infrastructure.settings.in_memory_settings_store import InMemorySettingsStore
from infrastructure.url.endpoint_url_resolver import EndpointUrlResolver, normalize_endpoint_url
from application.exceptions import RunInProgressError, ScenarioNotFoundError
from application.executor.scenario_engine import RunSummary, ScenarioEngine
from application.ports.http_client import HttpClientPort
from application.ports.requests_client import RequestsSessionHttpClient
from application.services.execution_deps import ExecutionDeps, SettingsProviderPort
from application.services.http_dispatcher import (
    FORM_HEADERS,
    UPSTREAM_CHAIN_HEADER,
    UPSTREAM_REDIRECTED_HEADER,
    UPSTREAM_URL_HEADER,
    HttpDispatcher,
)
from application.services.redactor import MASK, mask_dict
from application.services.request_context_builder import RequestContextBuilder
from application.services.template_renderer import TemplateRenderer, stringify
from application.services.tester_session import PreparedRun, TesterSession
from domain.exceptions import ValidationError
from domain.run_record import RunRecord, RunStatus


# リクエストモデル
class SettingsUpdateRequest(BaseModel):
    """設定更新リクエスト（指定した項目だけ更新）"""
    prepare_url: Optional[str] = Field(default=None, description="Prepare endpoint URL")
    complete_url: Optional[str] = Field(default=None, description="Complete endpoint URL")
    service_id: Optional[str] = None
    secret_key: Optional[str] = Field(default=None, description="署名用シークレット")
    merchant_trans_id: Optional[str] = None
    merchant_user_id: Optional[str] = None
    amount: Optional[str] = None
    click_paydoc_id: Optional[str] = None
    preset_merchant_prepare_id: Optional[str] = Field(
        default=None,
        description="Prepare id used by complete scenarios before any prepare succeeded",
    )


class LoadScenariosRequest(BaseModel):
    """シナリオ読み込みリクエスト: name（scenarios/ 配下）かインラインのどちらか"""
    name: Optional[str] = Field(default=None, description="Scenario file name without extension")
    scenarios: Optional[List[Dict[str, Any]]] = Field(default=None, description="Inline scenario list")
    fixture_overrides: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Replaces the default fixture override table",
    )


class ReplaceScenariosRequest(BaseModel):
    scenarios: List[Dict[str, Any]] = Field(description="Edited scenario list, in display order")


class ScenarioResponse(BaseModel):
    idx: int
    description: str
    action: str
    sending_error_code: int
    expected_error_code: int
    go_to_script: Optional[int] = None
    post: Dict[str, Any]
    status: str
    request_payload: Optional[Dict[str, str]] = None
    response: Optional[Dict[str, Any]] = None
    raw_response: Optional[str] = None
    actual_error_code: Optional[Any] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_ms: Optional[int] = None


class RunAcceptedResponse(BaseModel):
    """Accepted response for async execution"""
    run_id: str = Field(description="Run identifier")
    status: str = Field(description="Run status")
    links: Dict[str, str] = Field(description="Related resources")


class RunStatusResponse(BaseModel):
    run_id: str
    status: str
    scenario_idx: Optional[int] = Field(default=None, description="None for a full run")
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StopResponse(BaseModel):
    stopped: bool


class TesterLogEntryResponse(BaseModel):
    id: str
    timestamp: datetime
    level: str
    message: str
    scenario_index: Optional[int] = None


class AuditEntryResponse(BaseModel):
    id: str
    request_id: str
    timestamp: datetime
    direction: str
    context: str
    method: str
    url: str
    status: Optional[int] = None
    status_text: Optional[str] = None
    ok: Optional[bool] = None
    payload: Optional[Dict[str, str]] = None
    response_body: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    error_message: Optional[str] = None


# 設定
SCENARIOS_DIR = Path(__file__).parent.parent / "scenarios"
TESTING_LOG_PATH = Path(__file__).parent.parent / "testing.log"
MAX_WAIT_SEC = 30

ENV = EnvSettingsProvider()
LOGGER = ConsoleLogger()
RUN_LOG_STORE = InMemoryRunLogStore()
TESTER_LOG = RunLogTesterLog(log_store=RUN_LOG_STORE)
AUDIT_TRAIL = InMemoryAuditTrail()
RUN_REPOSITORY = InMemoryRunRepository()
RUN_SCHEDULER = InMemoryRunScheduler()


def _settings_file() -> Optional[Path]:
    path = ENV.lookup("TESTER_SETTINGS_FILE")
    return Path(path) if path else None


def _http_timeout() -> Optional[float]:
    raw = ENV.lookup("TESTER_HTTP_TIMEOUT_SEC")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("config.invalid_timeout", value=raw)
        return None


SETTINGS_STORE = InMemorySettingsStore(
    initial=ENV.get(),
    persist_path=_settings_file(),
    logger=LOGGER,
)


def build_session(
    settings_provider: SettingsProviderPort,
    http_client: Optional[HttpClientPort] = None,
    relay_url: Optional[str] = None,
    caller_origin: Optional[str] = None,
) -> TesterSession:
    dispatcher = HttpDispatcher(
        http_client or RequestsSessionHttpClient(timeout_sec=_http_timeout()),
        AUDIT_TRAIL,
        relay_url=relay_url,
        caller_origin=caller_origin,
    )
    builder = RequestContextBuilder(TemplateRenderer(), EndpointUrlResolver())
    deps = ExecutionDeps(
        settings_provider=settings_provider,
        logger=LOGGER,
        tester_log=TESTER_LOG,
    )
    return TesterSession(ScenarioEngine(builder, dispatcher), deps, audit_trail=AUDIT_TRAIL)


SESSION = build_session(
    SETTINGS_STORE,
    relay_url=ENV.lookup("TESTER_RELAY_URL"),
    caller_origin=ENV.lookup("TESTER_CALLER_ORIGIN"),
)
RELAY_CLIENT = RequestsSessionHttpClient(base_headers=FORM_HEADERS, timeout_sec=_http_timeout())


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # テスターログを testing.log にミラー（起動ごとに空にする）
    handler_id = add_testing_log_file(TESTING_LOG_PATH, truncate=True)
    LOGGER.info("api.start", testing_log=str(TESTING_LOG_PATH), handler_id=handler_id)
    yield
    RUN_SCHEDULER.shutdown()


# FastAPIアプリケーション
app = FastAPI(
    title="Payment Gateway Tester",
    description="Prepare / Complete エンドポイントのシナリオテスター",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/")
def read_root():
    """ヘルスチェック"""
    return {"status": "ok", "service": "payment-tester"}


def _masked_settings() -> Dict[str, Any]:
    return mask_dict(SETTINGS_STORE.get().to_dict())


@app.get("/settings")
def get_settings() -> Dict[str, Any]:
    return _masked_settings()


@app.put("/settings")
def update_settings(request: SettingsUpdateRequest = Body(...)) -> Dict[str, Any]:
    changes = request.model_dump(exclude_none=True)
    # マスク値がそのまま送り返された場合は上書きしない
    if changes.get("secret_key") == MASK:
        changes.pop("secret_key")
    SETTINGS_STORE.update(changes)
    LOGGER.info("settings.updated", fields=sorted(changes))
    return _masked_settings()


def _scenario_list() -> List[ScenarioResponse]:
    return [ScenarioResponse(**scenario.to_dict()) for scenario in SESSION.scenarios()]


def _find_scenario_file(name: str) -> Path:
    finder = ScenarioFileFinder(SCENARIOS_DIR)
    scenario_file = finder.find_by_name(name)
    if scenario_file is None:
        raise HTTPException(status_code=404, detail=f"Scenario file not found: {name}")
    return scenario_file


@app.post("/scenarios/load", response_model=List[ScenarioResponse])
def load_scenarios(request: LoadScenariosRequest = Body(...)) -> List[ScenarioResponse]:
    """
    シナリオを読み込んでボードを置き換える

    name を指定すると scenarios/ 配下のファイル、scenarios を指定するとインラインの内容を読む。
    """
    try:
        if request.name:
            scenario_file = _find_scenario_file(request.name)
            loader = ScenarioLoaderRegistry().get_loader(scenario_file)
            scenario_set = loader.load_from_file(scenario_file)
        elif request.scenarios is not None:
            data: Any = request.scenarios
            if request.fixture_overrides is not None:
                data = {"scenarios": request.scenarios, "fixture_overrides": request.fixture_overrides}
            scenario_set = JsonScenarioLoader().load_from_data(data)
        else:
            raise HTTPException(status_code=400, detail="Either name or scenarios is required")

        SESSION.load(scenario_set)
        return _scenario_list()
    except HTTPException:
        raise
    except (ScenarioLoadError, ValidationError) as e:
        TESTER_LOG.error(f"Failed to load scenarios: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/scenarios", response_model=List[ScenarioResponse])
def list_scenarios() -> List[ScenarioResponse]:
    return _scenario_list()


@app.get("/scenarios/export")
def export_scenarios() -> List[Dict[str, Any]]:
    """現在のボードをシナリオファイル形式（template.json と同じ）で返す"""
    return [dump_definition(scenario.definition) for scenario in SESSION.scenarios()]


@app.get("/scenarios/{idx}", response_model=ScenarioResponse)
def get_scenario(idx: int) -> ScenarioResponse:
    try:
        return ScenarioResponse(**SESSION.get(idx).to_dict())
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/scenarios", response_model=List[ScenarioResponse])
def replace_scenarios(request: ReplaceScenariosRequest = Body(...)) -> List[ScenarioResponse]:
    loader = JsonScenarioLoader()
    try:
        definitions = [loader.load_definition(item, i) for i, item in enumerate(request.scenarios)]
        SESSION.replace(definitions)
        return _scenario_list()
    except ScenarioLoadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))


def _create_run_record(run_id: str, scenario_idx: Optional[int]) -> RunRecord:
    now = datetime.now(timezone.utc)
    return RunRecord(
        run_id=run_id,
        scenario_idx=scenario_idx,
        status=RunStatus.QUEUED,
        created_at=now,
        updated_at=now,
    )


def _build_run_links(run_id: str) -> Dict[str, str]:
    return {
        "self": f"/runs/{run_id}",
        "scenarios": "/scenarios",
        "logs": "/logs",
    }


def _summary_dict(summary: RunSummary) -> Dict[str, Any]:
    return {
        "total": summary.total,
        "started": summary.started,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "cancelled": summary.cancelled,
    }


def _final_status(summary: RunSummary) -> RunStatus:
    if summary.cancelled:
        return RunStatus.CANCELLED
    return RunStatus.SUCCEEDED if summary.ok else RunStatus.FAILED


def _execute_run(session: TesterSession, run_id: str, prepared: PreparedRun) -> None:
    logger = LOGGER.bind(run_id=run_id)
    RUN_REPOSITORY.transition_status(run_id, RunStatus.QUEUED, RunStatus.RUNNING)

    try:
        summary = session.execute(prepared)
    except Exception as exc:
        logger.error("run.failed", error=str(exc))
        RUN_REPOSITORY.transition_status(run_id, RunStatus.RUNNING, RunStatus.FAILED, error=str(exc))
        return

    RUN_REPOSITORY.transition_status(
        run_id,
        RunStatus.RUNNING,
        _final_status(summary),
        summary=_summary_dict(summary),
    )


def _build_status_response(record: RunRecord) -> RunStatusResponse:
    return RunStatusResponse(
        run_id=record.run_id,
        status=record.status.value,
        scenario_idx=record.scenario_idx,
        summary=record.summary,
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _start_run(scenario_idx: Optional[int], wait_sec: Optional[int]):
    if wait_sec is not None and wait_sec > MAX_WAIT_SEC:
        raise HTTPException(status_code=400, detail=f"wait_sec must be <= {MAX_WAIT_SEC}")

    session = SESSION
    try:
        if scenario_idx is None:
            prepared = session.prepare_full_run()
        else:
            prepared = session.prepare_single_run(scenario_idx)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    run_id = uuid4().hex
    prepared.ctx.run_id = run_id
    record = _create_run_record(run_id, scenario_idx)
    RUN_REPOSITORY.create(record)

    # wait_sec 未指定ならリクエスト内で同期実行
    if wait_sec is None:
        _execute_run(session, run_id, prepared)
        return _build_status_response(RUN_REPOSITORY.get(run_id))

    RUN_SCHEDULER.submit(run_id, lambda: _execute_run(session, run_id, prepared))

    if wait_sec and RUN_SCHEDULER.wait(run_id, wait_sec):
        return _build_status_response(RUN_REPOSITORY.get(run_id))

    accepted = RunAcceptedResponse(
        run_id=run_id,
        status=record.status.value,
        links=_build_run_links(run_id),
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(),
    )


@app.post("/runs", response_model=RunStatusResponse)
def start_all(wait_sec: Optional[int] = Query(default=None, ge=0)):
    """読み込み済みシナリオをすべて順番に実行する"""
    return _start_run(None, wait_sec)


@app.post("/scenarios/{idx}/runs", response_model=RunStatusResponse)
def run_one(idx: int, wait_sec: Optional[int] = Query(default=None, ge=0)):
    """1 シナリオだけ実行する。チェーン状態は新しく作られる"""
    return _start_run(idx, wait_sec)


@app.post("/runs/stop", response_model=StopResponse)
def stop_run() -> StopResponse:
    return StopResponse(stopped=SESSION.stop())


@app.get("/runs/{run_id}", response_model=RunStatusResponse)
def get_run_status(run_id: str) -> RunStatusResponse:
    record = RUN_REPOSITORY.get(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return _build_status_response(record)


@app.get("/logs", response_model=List[TesterLogEntryResponse])
def get_logs() -> List[TesterLogEntryResponse]:
    return [
        TesterLogEntryResponse(
            id=entry.id,
            timestamp=entry.timestamp,
            level=entry.level.value,
            message=entry.message,
            scenario_index=entry.scenario_index,
        )
        for entry in TESTER_LOG.entries()
    ]


@app.delete("/logs")
def clear_logs() -> Dict[str, bool]:
    SESSION.clear_logs()
    return {"ok": True}


@app.get("/audit", response_model=List[AuditEntryResponse])
def get_audit_trail() -> List[AuditEntryResponse]:
    return [
        AuditEntryResponse(
            id=entry.id,
            request_id=entry.request_id,
            timestamp=entry.timestamp,
            direction=entry.direction.value,
            context=entry.context,
            method=entry.method,
            url=entry.url,
            status=entry.status,
            status_text=entry.status_text,
            ok=entry.ok,
            payload=mask_dict(entry.payload) if entry.payload else entry.payload,
            response_body=entry.response_body,
            headers=entry.headers,
            error_message=entry.error_message,
        )
        for entry in AUDIT_TRAIL.list()
    ]


def _proxy_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "message": message})


@app.post("/__tester/http-proxy")
def http_proxy(body: Any = Body(default=None)) -> Response:
    """
    開発用リレー: {url, payload} を受け取り、payload を form として url に POST する。

    POST のままリダイレクトを追いかけ、最終 URL とリダイレクト経路を
    X-Tester-Upstream-* ヘッダで返す。
    """
    raw_url = body.get("url") if isinstance(body, dict) else None
    payload = body.get("payload") if isinstance(body, dict) else None
    target = normalize_endpoint_url(raw_url) if isinstance(raw_url, str) else ""
    if not target or not isinstance(payload, dict):
        return _proxy_error(400, "Invalid proxy payload")

    scheme, sep, rest = target.partition("://")
    if not sep or not rest:
        return _proxy_error(400, "Invalid URL")
    if scheme.lower() not in ("http", "https"):
        return _proxy_error(400, "Only HTTP(S) targets are supported")

    form = {str(k): stringify(v) for k, v in payload.items()}
    try:
        upstream = RELAY_CLIENT.post_form(target, form)
    except requests.RequestException as e:
        LOGGER.error("relay.failed", url=target, error=str(e))
        return _proxy_error(502, str(e) or "Proxy request failed")

    chain = [item.url for item in upstream.history]
    headers = {
        UPSTREAM_URL_HEADER: upstream.url,
        UPSTREAM_REDIRECTED_HEADER: "1" if chain else "0",
    }
    if chain:
        headers[UPSTREAM_CHAIN_HEADER] = " -> ".join(chain)
    LOGGER.info("relay.response", url=target, status=upstream.status, redirects=len(chain))
    return Response(
        content=upstream.text,
        status_code=upstream.status,
        headers=headers,
        media_type=upstream.header("Content-Type") or "text/plain; charset=utf-8",
    )
