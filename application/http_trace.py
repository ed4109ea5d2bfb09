# application/http_trace.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

MAX_AUDIT_BODY_LENGTH = 4_000


class AuditDirection(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"


@dataclass(frozen=True)
class AuditContext:
    context: str
    scenario_idx: Optional[int] = None
    scenario_action: Optional[str] = None
    scenario_description: Optional[str] = None

    def label(self) -> str:
        segments = [self.context]
        if self.scenario_idx is not None:
            segments.append(f"scenario #{self.scenario_idx + 1}")
        if self.scenario_action:
            segments.append(self.scenario_action)
        if self.scenario_description:
            segments.append(self.scenario_description)
        return " | ".join(segments)


@dataclass(frozen=True)
class AuditEntry:
    id: str
    request_id: str
    timestamp: datetime
    direction: AuditDirection
    context: str
    method: str
    url: str
    status: Optional[int] = None
    status_text: Optional[str] = None
    ok: Optional[bool] = None
    payload: Optional[Dict[str, str]] = None
    response_body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    error_message: Optional[str] = None


def trim_audit_body(body: str) -> str:
    if not body:
        return ""
    if len(body) <= MAX_AUDIT_BODY_LENGTH:
        return body
    return f"{body[:MAX_AUDIT_BODY_LENGTH]}\n...[truncated {len(body) - MAX_AUDIT_BODY_LENGTH} chars]"
