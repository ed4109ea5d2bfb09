# infrastructure/url/endpoint_url_resolver.py
from __future__ import annotations

import re
from dataclasses import dataclass

_HAS_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*://")
_HOST_PORT = re.compile(r"^[\w.-]+:\d+(/|$)")


def normalize_endpoint_url(raw_url: str) -> str:
    """
    "localhost:8080/prepare" のようにスキームが無い host:port 形式なら http:// を補う。
    それ以外はトリムのみ。
    """
    trimmed = (raw_url or "").strip()
    if not trimmed:
        return ""
    if _HAS_SCHEME.match(trimmed):
        return trimmed
    if _HOST_PORT.match(trimmed):
        return f"http://{trimmed}"
    return trimmed


@dataclass(frozen=True)
class EndpointUrlResolver:
    def resolve_url(self, url: str) -> str:
        return normalize_endpoint_url(url)
