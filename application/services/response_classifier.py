# application/services/response_classifier.py
from __future__ import annotations

import math
from typing import Any, List, Optional, Union

from application.outcome import ErrorCode, ScenarioOutcome
from application.services.http_dispatcher import DispatchResult
from domain.api_response import ApiResponse
from domain.scenario import ScenarioStatus

RAW_PREVIEW_LIMIT = 300


def normalize_error_code(value: Any) -> Optional[Union[int, float]]:
    """
    error フィールドを数値に正規化する。数値化できなければ None。
    "-5" や " 0 " のような数値文字列も受け付ける。
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        # int は float に変換しない（桁が大きいと OverflowError になる）
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        if parsed.is_integer():
            return int(parsed)
        return parsed
    return None


def make_raw_preview(raw: str) -> str:
    normalized = (raw or "").strip()
    if len(normalized) > RAW_PREVIEW_LIMIT:
        return f"{normalized[:RAW_PREVIEW_LIMIT]}..."
    return normalized


class ResponseClassifier:
    """
    Decide success / error for one dispatched scenario.

    success requires: a JSON object body, ``success`` not literally false,
    and a numeric ``error`` equal to the expected code.
    """

    def classify(self, result: DispatchResult, url: str, expected_error_code: int) -> ScenarioOutcome:
        raw = result.raw or ""
        if result.json is None:
            return ScenarioOutcome(
                status=ScenarioStatus.ERROR,
                raw_response=raw,
                error_message=self._non_json_message(result, url),
            )

        response = ApiResponse.from_mapping(result.json)
        status = ScenarioStatus.SUCCESS
        error_message: Optional[str] = None

        if response.explicitly_failed:
            status = ScenarioStatus.ERROR
            message = response.message.strip() if isinstance(response.message, str) else ""
            error_message = message or "Server returned success = false."

        numeric = normalize_error_code(response.error)
        actual: Optional[ErrorCode] = numeric if numeric is not None else response.error

        # コード判定のメッセージは success=false より優先
        if numeric is None:
            status = ScenarioStatus.ERROR
            error_message = "Could not determine the error code in the server response."
        elif numeric != expected_error_code:
            status = ScenarioStatus.ERROR
            error_message = f"Expected code {expected_error_code}, got {response.error}."

        return ScenarioOutcome(
            status=status,
            response=response,
            raw_response=raw,
            actual_error_code=actual,
            error_message=error_message,
        )

    def classify_failure(self, error: Exception) -> ScenarioOutcome:
        return ScenarioOutcome(
            status=ScenarioStatus.ERROR,
            error_message=str(error) or "Network error.",
        )

    def _non_json_message(self, result: DispatchResult, url: str) -> str:
        status_label = f"{result.status} {result.status_text}" if result.status_text else str(result.status)
        details: List[str] = [f"URL: {url}", f"HTTP: {status_label}"]
        if result.content_type:
            details.append(f"Content-Type: {result.content_type}")
        details.append(f"Effective URL: {result.effective_url}")
        if result.redirected:
            details.append("Redirected: yes")
        if result.redirect_chain:
            details.append(f"Redirect chain: {result.redirect_chain}")

        message = "Server response is not a JSON object.\n" + "\n".join(details)
        preview = make_raw_preview(result.raw)
        if preview:
            message += f"\nResponse fragment: {preview}"
        return message
