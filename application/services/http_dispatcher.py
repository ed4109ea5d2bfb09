# application/services/http_dispatcher.py
from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import requests

from application.exceptions import EndpointNotConfiguredError, HttpStatusError, NetworkError
from application.http_trace import AuditContext, AuditDirection, AuditEntry, trim_audit_body
from application.ports.audit_trail import AuditTrailPort
from application.ports.http_client import HttpClientPort, HttpResponse

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json, text/plain, */*",
    "X-Requested-With": "XMLHttpRequest",
}
RELAY_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
}

UPSTREAM_URL_HEADER = "X-Tester-Upstream-Url"
UPSTREAM_REDIRECTED_HEADER = "X-Tester-Upstream-Redirected"
UPSTREAM_CHAIN_HEADER = "X-Tester-Upstream-Redirect-Chain"

RESPONSE_PREVIEW_LIMIT = 700

_DNS_MARKERS = ("nameresolutionerror", "name or service not known", "getaddrinfo", "nodename nor servname", "temporary failure in name resolution")


@dataclass(frozen=True)
class DispatchResult:
    json: Optional[Dict[str, Any]]
    raw: str
    status: int
    status_text: str
    content_type: str
    effective_url: str
    redirected: bool
    redirect_chain: Optional[str] = None


def parse_api_response(raw: str) -> Optional[Dict[str, Any]]:
    """JSON オブジェクトとして読めなければ None"""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def make_response_preview(raw: str, limit: int = RESPONSE_PREVIEW_LIMIT) -> str:
    normalized = re.sub(r"\s+", " ", (raw or "").strip())
    if len(normalized) <= limit:
        return normalized
    return f"{normalized[:limit]}..."


def _origin(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class HttpDispatcher:
    """
    Send one scenario request and return the structured reply.

    Every attempt is written to the audit trail: a ``request`` entry first,
    then either ``response`` or ``error``.
    """

    def __init__(
        self,
        http_client: HttpClientPort,
        audit_trail: AuditTrailPort,
        relay_url: Optional[str] = None,
        caller_origin: Optional[str] = None,
    ):
        self._http = http_client
        self._audit = audit_trail
        self._relay_url = (relay_url or "").strip() or None
        self._caller_origin = _origin(caller_origin or "") if caller_origin else None

    def send(self, url: str, payload: Dict[str, str], audit_context: AuditContext) -> DispatchResult:
        if not url:
            raise EndpointNotConfiguredError("Endpoint URL is not configured in settings")

        request_id = uuid.uuid4().hex
        label = audit_context.label()
        self._record(request_id, AuditDirection.REQUEST, label, url, payload=payload)

        use_relay = self.should_use_relay(url)
        try:
            if use_relay:
                resp = self._http.post_json(self._relay_url, {"url": url, "payload": payload}, headers=RELAY_HEADERS)
            else:
                resp = self._http.post_form(url, payload, headers=FORM_HEADERS)
        except requests.RequestException as exc:
            error = self._network_error(url, exc)
            self._record(request_id, AuditDirection.ERROR, label, url, payload=payload, error_message=str(error))
            raise error from exc

        raw = resp.text or ""
        parsed = parse_api_response(raw)
        self._record(
            request_id,
            AuditDirection.RESPONSE,
            label,
            url,
            payload=payload,
            status=resp.status,
            status_text=resp.reason,
            ok=resp.ok,
            headers=dict(resp.headers or {}),
            response_body=trim_audit_body(raw),
        )

        if not resp.ok:
            server_message = parsed.get("message") if parsed and isinstance(parsed.get("message"), str) else None
            raise self._status_error(url, resp, raw, server_message)

        return self._to_result(url, resp, raw, parsed)

    def should_use_relay(self, url: str) -> bool:
        if not self._relay_url or not self._caller_origin:
            return False
        target = _origin(url)
        if target is None or not target.startswith(("http://", "https://")):
            return False
        return target != self._caller_origin

    def _to_result(self, url: str, resp: HttpResponse, raw: str, parsed: Optional[Dict[str, Any]]) -> DispatchResult:
        relayed_url = resp.header(UPSTREAM_URL_HEADER) or ""
        relayed_redirected = resp.header(UPSTREAM_REDIRECTED_HEADER) == "1"
        relayed_chain = resp.header(UPSTREAM_CHAIN_HEADER) or ""

        local_chain = " -> ".join(h.url for h in resp.history or [])

        return DispatchResult(
            json=parsed,
            raw=raw,
            status=resp.status,
            status_text=resp.reason or "",
            content_type=resp.header("Content-Type") or "",
            effective_url=relayed_url or resp.url or url,
            redirected=relayed_redirected or bool(resp.history),
            redirect_chain=relayed_chain or local_chain or None,
        )

    def _status_error(self, url: str, resp: HttpResponse, raw: str, server_message: Optional[str]) -> HttpStatusError:
        status_label = f"{resp.status} {resp.reason}" if resp.reason else str(resp.status)
        preview = make_response_preview(raw)
        parts = [f"HTTP {status_label} while requesting {url}."]
        if server_message and server_message.strip():
            parts.append(f"Server message: {server_message.strip()}")
        if preview:
            parts.append(f"Response (fragment): {preview}")
        return HttpStatusError(
            "\n".join(parts),
            status=resp.status,
            status_text=resp.reason or "",
            body_preview=preview,
            server_message=server_message,
        )

    def _network_error(self, url: str, exc: requests.RequestException) -> NetworkError:
        reason = str(exc).strip() or "unknown error"
        causes, hints = self._classify(url, exc, reason)

        parts = [f"Network request failed: {reason}", f"URL: {url}"]
        if hints:
            parts.append(f"Check: {' '.join(hints)}")
        return NetworkError("\n".join(parts), reason=reason, likely_causes=tuple(causes))

    def _classify(self, url: str, exc: requests.RequestException, reason: str) -> Tuple[List[str], List[str]]:
        causes: List[str] = []
        hints: List[str] = []
        lowered = reason.lower()
        target = _origin(url)

        if target is None or isinstance(exc, (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema)):
            causes.append("invalid_url")
            hints.append("Invalid request URL.")

        # SSLError / ConnectTimeout は ConnectionError のサブクラスなので先に判定する
        if isinstance(exc, requests.exceptions.SSLError):
            causes.append("tls")
            hints.append("TLS handshake failed (certificate or protocol mismatch).")
        elif isinstance(exc, requests.exceptions.Timeout):
            causes.append("timeout")
            hints.append("The endpoint did not answer in time.")
        elif isinstance(exc, requests.exceptions.ConnectionError):
            if any(marker in lowered for marker in _DNS_MARKERS):
                causes.extend(["dns", "offline"])
                hints.append("Host name could not be resolved (DNS) or the machine is offline.")
            elif "refused" in lowered:
                causes.append("connection_refused")
                hints.append("Connection refused: is the endpoint running on that port?")

        if self._caller_origin and target:
            if self._caller_origin.startswith("https://") and target.startswith("http://"):
                causes.append("mixed_content")
                hints.append("HTTPS page calls an HTTP API (mixed content).")
            if target != self._caller_origin:
                causes.append("cross_origin")
                hints.append("Request to another origin: check CORS and preflight (OPTIONS).")

        return causes, hints

    def _record(self, request_id: str, direction: AuditDirection, context: str, url: str, **fields: Any) -> None:
        self._audit.append(
            AuditEntry(
                id=uuid.uuid4().hex,
                request_id=request_id,
                timestamp=datetime.now(timezone.utc),
                direction=direction,
                context=context,
                method="POST",
                url=url,
                **fields,
            )
        )
