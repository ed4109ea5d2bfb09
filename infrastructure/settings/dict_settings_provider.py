# infrastructure/settings/dict_settings_provider.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from domain.settings import TesterSettings


@dataclass(frozen=True)
class DictSettingsProvider:
    settings: Dict[str, Any]

    def get(self) -> TesterSettings:
        return TesterSettings.from_dict(self.settings)
