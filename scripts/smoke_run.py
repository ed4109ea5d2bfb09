#!/usr/bin/env python3
"""
Scenario execution script

Usage:
  python scripts/smoke_run.py run --scenario-file <path> [--settings <json>] [--settings-file <path>] [--idx <n>]
  python scripts/smoke_run.py run --scenario-name <name> [--testing-log <path>]
  python scripts/smoke_run.py start --api-base-url <url> [--scenario-name <name>] [--idx <n>] [--wait-sec <sec>]
  python scripts/smoke_run.py wait --run-id <id> --api-base-url <url> [--timeout-sec <sec>]
  python scripts/smoke_run.py status --run-id <id> --api-base-url <url>
  python scripts/smoke_run.py stop --api-base-url <url>
  python scripts/smoke_run.py logs --api-base-url <url>

Examples:
  python scripts/smoke_run.py scenarios/template.json
  python scripts/smoke_run.py run --scenario-file scenarios/template.json --settings '{"service_id":"1"}'
  python scripts/smoke_run.py start --scenario-name template --api-base-url http://localhost:8000
  python scripts/smoke_run.py wait --run-id <run_id> --api-base-url http://localhost:8000 --timeout-sec 30

Settings come from TESTER_* environment variables (.env is read); --settings and
--settings-file override individual fields.
"""
from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv()

from infrastructure.logging.log_setup import add_testing_log_file, setup_console_logging
setup_console_logging(level="INFO")

from application.exceptions import RunInProgressError, ScenarioNotFoundError
from application.executor.scenario_engine import RunSummary, ScenarioEngine
from application.ports.requests_client import RequestsSessionHttpClient
from application.services.execution_deps import ExecutionDeps
from application.services.http_dispatcher import HttpDispatcher
from application.services.request_context_builder import RequestContextBuilder
from application.services.template_renderer import TemplateRenderer
from application.services.tester_session import TesterSession
from domain.exceptions import ValidationError
from domain.scenario import TestScenario
from infrastructure.audit.in_memory_audit_trail import InMemoryAuditTrail
from infrastructure.logging.console_logger import ConsoleLogger
from infrastructure.logging.run_log_logger import RunLogTesterLog
from infrastructure.run.in_memory_run_log_store import InMemoryRunLogStore
from infrastructure.scenario.base_loader import ScenarioLoadError
from infrastructure.scenario.file_finder import ScenarioFileFinder
from infrastructure.scenario.loader_registry import ScenarioLoaderRegistry
from infrastructure.settings.dict_settings_provider import DictSettingsProvider
from infrastructure.settings.env_settings_provider import EnvSettingsProvider
from infrastructure.url.endpoint_url_resolver import EndpointUrlResolver


SCENARIOS_DIR = Path(__file__).parent.parent / "scenarios"
DEFAULT_API_TIMEOUT_SEC = 30


def _parse_json_payload(raw: str, label: str) -> dict:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON for {label}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{label} must be a JSON object")
    return parsed


def _load_json_file(path: str, label: str) -> dict:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Unable to read {label} file: {exc}") from exc
    return _parse_json_payload(content, label)


def _load_settings_overrides(args: argparse.Namespace) -> dict:
    if args.settings is not None and args.settings_file is not None:
        raise ValueError("Multiple settings sources provided")
    if args.settings is not None:
        return _parse_json_payload(args.settings, "settings")
    if args.settings_file is not None:
        return _load_json_file(args.settings_file, "settings")
    return {}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prepare / Complete scenario tester")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run scenarios locally")
    run_parser.add_argument("--scenario-file", type=str)
    run_parser.add_argument("--scenario-name", type=str)
    run_parser.add_argument("--settings", type=str)
    run_parser.add_argument("--settings-file", type=str)
    run_parser.add_argument("--idx", type=int, help="Run only the scenario with this index")
    run_parser.add_argument("--testing-log", type=str, help="Mirror the tester log to this file")

    start_parser = subparsers.add_parser("start", help="Start a run via API")
    start_parser.add_argument("--api-base-url", type=str, required=True)
    start_parser.add_argument("--scenario-name", type=str, help="Load this scenario file first")
    start_parser.add_argument("--idx", type=int)
    start_parser.add_argument("--wait-sec", type=int, default=0)

    wait_parser = subparsers.add_parser("wait", help="Wait for async run completion")
    wait_parser.add_argument("--run-id", type=str, required=True)
    wait_parser.add_argument("--api-base-url", type=str, required=True)
    wait_parser.add_argument("--timeout-sec", type=int, default=DEFAULT_API_TIMEOUT_SEC)
    wait_parser.add_argument("--interval-sec", type=float, default=1.0)

    status_parser = subparsers.add_parser("status", help="Fetch async run status")
    status_parser.add_argument("--run-id", type=str, required=True)
    status_parser.add_argument("--api-base-url", type=str, required=True)

    stop_parser = subparsers.add_parser("stop", help="Stop the running queue")
    stop_parser.add_argument("--api-base-url", type=str, required=True)

    logs_parser = subparsers.add_parser("logs", help="Fetch the tester log")
    logs_parser.add_argument("--api-base-url", type=str, required=True)

    return parser


def _resolve_scenario_path(args: argparse.Namespace) -> Path:
    if args.scenario_file:
        return Path(args.scenario_file)
    if args.scenario_name:
        scenario_file = ScenarioFileFinder(SCENARIOS_DIR).find_by_name(args.scenario_name)
        if scenario_file is None:
            raise ValueError(f"Scenario file not found: {args.scenario_name}")
        return scenario_file
    raise ValueError("scenario-file or scenario-name is required for local run")


def _http_timeout(env_provider: EnvSettingsProvider) -> Optional[float]:
    raw = env_provider.lookup("TESTER_HTTP_TIMEOUT_SEC")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"TESTER_HTTP_TIMEOUT_SEC must be a number: {raw}") from exc


def _build_local_session(settings_overrides: dict) -> TesterSession:
    env_provider = EnvSettingsProvider()
    if settings_overrides:
        merged = env_provider.get().to_dict()
        merged.update(settings_overrides)
        settings_provider = DictSettingsProvider(merged)
    else:
        settings_provider = env_provider

    audit_trail = InMemoryAuditTrail()
    dispatcher = HttpDispatcher(
        RequestsSessionHttpClient(timeout_sec=_http_timeout(env_provider)),
        audit_trail,
        relay_url=env_provider.lookup("TESTER_RELAY_URL"),
        caller_origin=env_provider.lookup("TESTER_CALLER_ORIGIN"),
    )
    deps = ExecutionDeps(
        settings_provider=settings_provider,
        logger=ConsoleLogger(),
        tester_log=RunLogTesterLog(log_store=InMemoryRunLogStore()),
    )
    engine = ScenarioEngine(RequestContextBuilder(TemplateRenderer(), EndpointUrlResolver()), dispatcher)
    return TesterSession(engine, deps, audit_trail=audit_trail)


def _print_scenario(scenario: TestScenario) -> None:
    mark = "OK " if scenario.status.value == "success" else "NG "
    print(
        f"{mark}[{scenario.idx + 1}] {scenario.description} "
        f"({scenario.action.value}) expected={scenario.expected_error_code} actual={scenario.actual_error_code}"
    )
    if scenario.error_message:
        for line in scenario.error_message.splitlines():
            print(f"      {line}")


def _run_local(args: argparse.Namespace) -> int:
    scenario_path = _resolve_scenario_path(args)
    settings_overrides = _load_settings_overrides(args)

    try:
        loader = ScenarioLoaderRegistry().get_loader(scenario_path)
        scenario_set = loader.load_from_file(scenario_path)
    except ScenarioLoadError as e:
        raise ValueError(f"Failed to load scenarios: {e}") from e

    print(f"Scenarios: {len(scenario_set.definitions)} ({scenario_path})")

    if args.testing_log:
        add_testing_log_file(args.testing_log, truncate=True)

    session = _build_local_session(settings_overrides)
    session.load(scenario_set)

    print("\n=== Executing ===\n")
    try:
        if args.idx is None:
            summary = session.start_all()
        else:
            summary = session.run_one(args.idx)
    except (ValidationError, ScenarioNotFoundError, RunInProgressError) as e:
        raise ValueError(str(e)) from e

    print("\n=== Result ===")
    for scenario in session.scenarios():
        if scenario.status.value in ("success", "error"):
            _print_scenario(scenario)
    _print_summary(summary)
    return 0 if summary.ok else 1


def _print_summary(summary: RunSummary) -> None:
    print(f"Run ID: {summary.run_id}")
    print(
        f"Total: {summary.total}  Started: {summary.started}  "
        f"Passed: {summary.succeeded}  Failed: {summary.failed}  Cancelled: {summary.cancelled}"
    )


def _api_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _start_api(args: argparse.Namespace) -> int:
    if args.scenario_name:
        response = requests.post(
            _api_url(args.api_base_url, "/scenarios/load"),
            json={"name": args.scenario_name},
            timeout=DEFAULT_API_TIMEOUT_SEC,
        )
        if response.status_code >= 400:
            print(f"Status: {response.status_code}")
            print(json.dumps(response.json(), indent=2, ensure_ascii=False))
            return 1

    path = "/runs" if args.idx is None else f"/scenarios/{args.idx}/runs"
    response = requests.post(
        _api_url(args.api_base_url, path),
        params={"wait_sec": args.wait_sec},
        timeout=DEFAULT_API_TIMEOUT_SEC + args.wait_sec,
    )
    print(f"Status: {response.status_code}")
    data = response.json()
    print(json.dumps(data, indent=2, ensure_ascii=False))
    if response.status_code == 202:
        return 0
    if response.status_code >= 400:
        return 1
    return 0 if data.get("status") == "succeeded" else 1


def _get_json(url: str):
    response = requests.get(url, timeout=DEFAULT_API_TIMEOUT_SEC)
    response.raise_for_status()
    return response.json()


def _wait_api(args: argparse.Namespace) -> int:
    deadline = time.monotonic() + args.timeout_sec
    status_url = _api_url(args.api_base_url, f"/runs/{args.run_id}")
    while True:
        data = _get_json(status_url)
        status = data.get("status", "").lower()
        if status in {"succeeded", "failed", "cancelled"}:
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 0 if status == "succeeded" else 1
        if time.monotonic() >= deadline:
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 1
        time.sleep(args.interval_sec)


def _status_api(args: argparse.Namespace) -> int:
    data = _get_json(_api_url(args.api_base_url, f"/runs/{args.run_id}"))
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def _stop_api(args: argparse.Namespace) -> int:
    response = requests.post(_api_url(args.api_base_url, "/runs/stop"), timeout=DEFAULT_API_TIMEOUT_SEC)
    response.raise_for_status()
    data = response.json()
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0 if data.get("stopped") else 1


def _logs_api(args: argparse.Namespace) -> int:
    entries = _get_json(_api_url(args.api_base_url, "/logs"))
    for entry in entries:
        print(f"{entry['timestamp']} [{entry['level']}] {entry['message']}")
    return 0


def main() -> None:
    parser = _build_parser()
    argv = sys.argv[1:]
    if argv and argv[0] not in {"run", "start", "wait", "status", "stop", "logs", "-h", "--help"}:
        argv = ["run", "--scenario-file", argv[0]] + argv[1:]
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "run":
            exit_code = _run_local(args)
        elif args.command == "start":
            exit_code = _start_api(args)
        elif args.command == "wait":
            exit_code = _wait_api(args)
        elif args.command == "status":
            exit_code = _status_api(args)
        elif args.command == "stop":
            exit_code = _stop_api(args)
        elif args.command == "logs":
            exit_code = _logs_api(args)
        else:
            raise ValueError(f"Unknown command: {args.command}")
    except ValueError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    except requests.RequestException as exc:
        print(f"ERROR: API request failed: {exc}")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
