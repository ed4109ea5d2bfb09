# application/services/redactor.py
from __future__ import annotations

from typing import Any, Dict

MASK = "********"
SENSITIVE_KEYS = {"secret_key", "secretkey", "password", "passwd", "authorization", "cookie", "set-cookie"}


def mask_value(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS and value:
        return MASK
    return value


def mask_dict(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: mask_value(k, v) for k, v in (d or {}).items()}
