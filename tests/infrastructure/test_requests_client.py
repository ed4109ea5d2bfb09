from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from application.ports.requests_client import MAX_REDIRECTS, RequestsSessionHttpClient


class FakeResponse:
    def __init__(self, status_code: int, text: str = "", headers: Dict[str, str] | None = None, reason: str = "OK"):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self.reason = reason


class FakeSession:
    def __init__(self, responses: List[FakeResponse]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return self._responses.pop(0)


def _client_with(responses: List[FakeResponse], **kwargs: Any) -> tuple[RequestsSessionHttpClient, FakeSession]:
    client = RequestsSessionHttpClient(**kwargs)
    session = FakeSession(responses)
    client._session = session  # type: ignore[assignment]
    return client, session


def test_post_form_sends_headers_and_body() -> None:
    client, session = _client_with(
        [FakeResponse(200, '{"error":0}', {"Content-Type": "application/json"})],
        base_headers={"Accept": "application/json, text/plain, */*"},
    )

    resp = client.post_form("http://pay.local/prepare", {"a": "1"}, headers={"X-Requested-With": "XMLHttpRequest"})

    assert resp.status == 200
    assert resp.text == '{"error":0}'
    assert resp.history == []
    call = session.calls[0]
    assert call["data"] == {"a": "1"}
    assert call["allow_redirects"] is False
    assert call["timeout"] is None
    assert call["headers"] == {
        "Accept": "application/json, text/plain, */*",
        "X-Requested-With": "XMLHttpRequest",
    }


def test_redirects_are_reposted_with_same_body() -> None:
    client, session = _client_with(
        [
            FakeResponse(302, headers={"Location": "/v2/prepare"}),
            FakeResponse(307, headers={"Location": "https://other.local/final"}),
            FakeResponse(200, "ok"),
        ],
        timeout_sec=5,
    )

    resp = client.post_form("http://pay.local/prepare", {"a": "1"})

    assert [c["url"] for c in session.calls] == [
        "http://pay.local/prepare",
        "http://pay.local/v2/prepare",
        "https://other.local/final",
    ]
    assert all(c["data"] == {"a": "1"} for c in session.calls)
    assert all(c["timeout"] == 5 for c in session.calls)
    assert resp.url == "https://other.local/final"
    assert [h.url for h in resp.history] == ["http://pay.local/v2/prepare", "https://other.local/final"]


def test_redirect_without_location_is_final() -> None:
    client, _ = _client_with([FakeResponse(302, "moved", reason="Found")])

    resp = client.post_json("http://relay.local/proxy", {"url": "x", "payload": {}})

    assert resp.status == 302
    assert resp.reason == "Found"


def test_too_many_redirects() -> None:
    client, _ = _client_with([FakeResponse(301, headers={"Location": "/loop"}) for _ in range(MAX_REDIRECTS)])

    with pytest.raises(requests.TooManyRedirects):
        client.post_form("http://pay.local/loop", {})
