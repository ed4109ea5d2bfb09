# tests/mock_http_client.py
"""
Mock HTTP client for testing scenarios without a real payment endpoint.
Responses are produced by a handler that receives the posted form.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from application.ports.http_client import HttpClientPort, HttpResponse


@dataclass
class RecordedCall:
    method: str
    url: str
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)


def json_response(url: str, data: Any, status: int = 200, reason: str = "OK") -> HttpResponse:
    return HttpResponse(
        status=status,
        url=url,
        text=json.dumps(data),
        headers={"Content-Type": "application/json"},
        reason=reason,
    )


def text_response(url: str, text: str, status: int = 200, reason: str = "OK") -> HttpResponse:
    return HttpResponse(
        status=status,
        url=url,
        text=text,
        headers={"Content-Type": "text/plain"},
        reason=reason,
    )


class MockHttpClient(HttpClientPort):
    """
    Mock HTTP client that answers every POST through ``handler``.

    The default handler answers ``{"error": 0}``. Raise an exception from the
    handler to simulate a transport failure.
    """

    def __init__(self, handler: Optional[Callable[[str, Mapping[str, str]], HttpResponse]] = None):
        self._handler = handler or (lambda url, form: json_response(url, {"error": 0}))
        self.calls: List[RecordedCall] = []

    def post_form(
        self,
        url: str,
        form: Mapping[str, str],
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        self.calls.append(RecordedCall("form", url, dict(form), dict(headers or {})))
        return self._handler(url, form)

    def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        self.calls.append(RecordedCall("json", url, body, dict(headers or {})))
        target = body.get("url", url) if isinstance(body, dict) else url
        form = body.get("payload", {}) if isinstance(body, dict) else {}
        return self._handler(target, form)

    @property
    def forms(self) -> List[Dict[str, str]]:
        return [call.body for call in self.calls if call.method == "form"]


class FakeTesterLog:
    """TesterLogPort that only remembers (level, message, scenario_index)."""

    def __init__(self) -> None:
        self.lines: List[tuple] = []

    def info(self, message: str, scenario_index: Optional[int] = None) -> None:
        self.lines.append(("info", message, scenario_index))

    def success(self, message: str, scenario_index: Optional[int] = None) -> None:
        self.lines.append(("success", message, scenario_index))

    def error(self, message: str, scenario_index: Optional[int] = None) -> None:
        self.lines.append(("error", message, scenario_index))

    def entries(self) -> list:
        return list(self.lines)

    def clear(self) -> None:
        self.lines.clear()

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [msg for lvl, msg, _ in self.lines if level is None or lvl == level]
