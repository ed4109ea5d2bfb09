# application/ports/http_client.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class HttpHistoryItem:
    status: int
    url: str
    location: Optional[str]


@dataclass(frozen=True)
class HttpResponse:
    status: int
    url: str
    text: str
    headers: Dict[str, str]
    reason: str = ""
    history: List[HttpHistoryItem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in (self.headers or {}).items():
            if key.lower() == lowered:
                return value
        return None


class HttpClientPort(ABC):
    @abstractmethod
    def post_form(
        self,
        url: str,
        form: Mapping[str, str],
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """POST x-www-form-urlencoded, re-posting the body across redirects."""
        ...

    @abstractmethod
    def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        ...
