# infrastructure/settings/env_settings_provider.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

from domain.settings import DEFAULT_CLICK_PAYDOC_ID, TesterSettings


# プロジェクトルートの .env
DEFAULT_ENV_PATH = Path(__file__).parent.parent.parent / ".env"

ENV_KEYS: Dict[str, str] = {
    "prepare_url": "TESTER_PREPARE_URL",
    "complete_url": "TESTER_COMPLETE_URL",
    "service_id": "TESTER_SERVICE_ID",
    "secret_key": "TESTER_SECRET_KEY",
    "merchant_trans_id": "TESTER_MERCHANT_TRANS_ID",
    "merchant_user_id": "TESTER_MERCHANT_USER_ID",
    "amount": "TESTER_AMOUNT",
    "click_paydoc_id": "TESTER_CLICK_PAYDOC_ID",
    "preset_merchant_prepare_id": "TESTER_PRESET_MERCHANT_PREPARE_ID",
}


class EnvSettingsProvider:
    """
    環境変数と .env ファイルからテスター設定を読む。

    .env の値が環境変数より優先される。get() のたびに読み直すので、
    実行中に .env を書き換えると次のシナリオから反映される。
    """

    def __init__(self, env_path: Optional[Path] = DEFAULT_ENV_PATH):
        self._env_path = env_path

    def get(self) -> TesterSettings:
        values = self._load()
        data = {field: values.get(env_key) for field, env_key in ENV_KEYS.items()}
        if data.get("click_paydoc_id") is None:
            data["click_paydoc_id"] = DEFAULT_CLICK_PAYDOC_ID
        return TesterSettings.from_dict(data)

    def lookup(self, key: str) -> Optional[str]:
        """テスター設定以外の値（TESTER_RELAY_URL など）を同じ優先順位で読む"""
        value = self._load().get(key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def _load(self) -> Dict[str, Optional[str]]:
        merged: Dict[str, Optional[str]] = {}
        if self._env_path is not None and self._env_path.exists():
            merged.update(dotenv_values(self._env_path))
        for key, value in os.environ.items():
            if key not in merged:
                merged[key] = value
        return merged
