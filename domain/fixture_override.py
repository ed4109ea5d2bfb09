# domain/fixture_override.py
"""
Per-correlation-id overrides for protocol test fixtures.

Some fixture scenarios need behaviour that cannot be expressed in their post
data: a fresh merchant_trans_id per run, a forced amount, a prepare id taken
from another scenario, or a known-good signature. They are listed here as
data instead of being special-cased in the request builder.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from domain.exceptions import ValidationError

KNOWN_GOOD_SIGNATURE = "10a250d95b1a6afedcda8360a12a1341"


@dataclass(frozen=True)
class FixtureOverride:
    random_merchant_trans_id: bool = False
    fixed_amount: Optional[str] = None
    random_merchant_prepare_id: bool = False
    prepare_id_from: Optional[str] = None
    fixed_signature: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FixtureOverride":
        if not isinstance(data, Mapping):
            raise ValidationError(f"Fixture override must be a mapping: {data!r}")
        unknown = set(data) - {
            "random_merchant_trans_id",
            "fixed_amount",
            "random_merchant_prepare_id",
            "prepare_id_from",
            "fixed_signature",
        }
        if unknown:
            raise ValidationError(f"Unknown fixture override keys: {', '.join(sorted(unknown))}")

        def _flag(key: str) -> bool:
            value = data.get(key)
            if value is None:
                return False
            if not isinstance(value, bool):
                raise ValidationError(f"Fixture override '{key}' must be true or false, got {value!r}")
            return value

        def _opt_str(key: str) -> Optional[str]:
            value = data.get(key)
            return None if value is None else str(value)

        return cls(
            random_merchant_trans_id=_flag("random_merchant_trans_id"),
            fixed_amount=_opt_str("fixed_amount"),
            random_merchant_prepare_id=_flag("random_merchant_prepare_id"),
            prepare_id_from=_opt_str("prepare_id_from"),
            fixed_signature=_opt_str("fixed_signature"),
        )


FixtureOverrideTable = Dict[str, FixtureOverride]


# 既存テンプレート（template.json）に含まれるフィクスチャ
DEFAULT_FIXTURE_OVERRIDES: FixtureOverrideTable = {
    "77816": FixtureOverride(random_merchant_trans_id=True),
    "73907": FixtureOverride(fixed_amount="499"),
    "26216": FixtureOverride(random_merchant_prepare_id=True),
    "11994": FixtureOverride(prepare_id_from="18409"),
    "27147": FixtureOverride(fixed_signature=KNOWN_GOOD_SIGNATURE),
    "26021": FixtureOverride(fixed_signature=KNOWN_GOOD_SIGNATURE),
}


def parse_fixture_overrides(data: Mapping[str, Any]) -> FixtureOverrideTable:
    if not isinstance(data, Mapping):
        raise ValidationError("fixture_overrides must be a mapping of correlation id to override")
    return {str(key).strip(): FixtureOverride.from_dict(value) for key, value in data.items()}
