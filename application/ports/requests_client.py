# application/ports/requests_client.py
from __future__ import annotations

import requests
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urljoin

from application.ports.http_client import HttpClientPort, HttpHistoryItem, HttpResponse

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
MAX_REDIRECTS = 8


class RequestsSessionHttpClient(HttpClientPort):
    """
    requests.Session ベースの HTTP クライアント。

    requests は 301/302/303 で POST を GET に変えてしまうので、
    リダイレクトは自前で追いかけて同じ body を POST し直す。
    timeout_sec=None ならタイムアウトなし（トランスポート任せ）。
    """

    def __init__(self, base_headers: Optional[Dict[str, str]] = None, timeout_sec: Optional[float] = None):
        self._session = requests.Session()
        self._base_headers = base_headers or {}
        self._timeout = timeout_sec

    def post_form(
        self,
        url: str,
        form: Mapping[str, str],
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        return self._post_following_redirects(url, headers, data=dict(form))

    def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        return self._post_following_redirects(url, headers, json=body)

    def _post_following_redirects(self, url: str, headers: Optional[Dict[str, str]], **body: Any) -> HttpResponse:
        merged = dict(self._base_headers)
        if headers:
            merged.update(headers)

        current_url = url
        history: List[HttpHistoryItem] = []

        for _ in range(MAX_REDIRECTS):
            resp = self._session.post(
                current_url,
                headers=merged,
                timeout=self._timeout,
                allow_redirects=False,
                **body,
            )

            location = (resp.headers.get("Location") or "").strip()
            if resp.status_code not in REDIRECT_STATUS_CODES or not location:
                return HttpResponse(
                    status=resp.status_code,
                    url=current_url,
                    text=resp.text,
                    headers=dict(resp.headers),
                    reason=resp.reason or "",
                    history=history,
                )

            next_url = urljoin(current_url, location)
            history.append(HttpHistoryItem(status=resp.status_code, url=next_url, location=location))
            current_url = next_url

        raise requests.TooManyRedirects(f"Too many redirects while posting to {url}")
