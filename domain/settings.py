# domain/settings.py
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

DEFAULT_CLICK_PAYDOC_ID = "16853761"


@dataclass(frozen=True)
class TesterSettings:
    prepare_url: str = ""
    complete_url: str = ""
    service_id: str = ""
    secret_key: str = ""
    merchant_trans_id: str = ""
    merchant_user_id: str = ""
    amount: str = ""
    click_paydoc_id: str = DEFAULT_CLICK_PAYDOC_ID
    preset_merchant_prepare_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TesterSettings":
        known = {f.name for f in fields(cls)}
        values = {k: "" if v is None else str(v) for k, v in (data or {}).items() if k in known}
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)
