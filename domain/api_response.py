# domain/api_response.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

_KNOWN_FIELDS = ("success", "error", "message", "merchant_prepare_id")


@dataclass(frozen=True)
class ApiResponse:
    """
    Parsed JSON reply of a tested endpoint.

    Only ``error`` is required by the protocol; ``success``, ``message`` and
    ``merchant_prepare_id`` are optional. Anything else is kept in ``extra`` so
    that later scenarios can still reference it.
    """
    error: Any = None
    success: Any = None
    message: Any = None
    merchant_prepare_id: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ApiResponse":
        return cls(
            error=data.get("error"),
            success=data.get("success"),
            message=data.get("message"),
            merchant_prepare_id=data.get("merchant_prepare_id"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    @property
    def explicitly_failed(self) -> bool:
        return self.success is False

    def prepare_id(self) -> Optional[str]:
        if isinstance(self.merchant_prepare_id, str):
            value = self.merchant_prepare_id.strip()
            return value or None
        return None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        for name in _KNOWN_FIELDS:
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        return out
