# infrastructure/settings/in_memory_settings_store.py
from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from application.ports.logger import LoggerPort
from domain.settings import TesterSettings


class InMemorySettingsStore:
    """
    Editable settings with best-effort persistence to a JSON file.

    A missing or broken file falls back to the initial settings; write
    failures are logged and otherwise ignored.
    """

    def __init__(
        self,
        initial: Optional[TesterSettings] = None,
        persist_path: Optional[Path] = None,
        logger: Optional[LoggerPort] = None,
    ):
        self._lock = Lock()
        self._path = persist_path
        self._logger = logger
        self._settings = self._restore() or initial or TesterSettings()

    def get(self) -> TesterSettings:
        with self._lock:
            return self._settings

    def update(self, changes: Dict[str, Any]) -> TesterSettings:
        with self._lock:
            merged = self._settings.to_dict()
            merged.update({k: v for k, v in changes.items() if k in merged})
            self._settings = TesterSettings.from_dict(merged)
            self._persist(self._settings)
            return self._settings

    def _restore(self) -> Optional[TesterSettings]:
        if self._path is None or not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self._warn("settings.restore_failed", e)
            return None
        if not isinstance(data, dict):
            return None
        return TesterSettings.from_dict(data)

    def _persist(self, settings: TesterSettings) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(settings.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            self._warn("settings.persist_failed", e)

    def _warn(self, event: str, error: Exception) -> None:
        if self._logger is not None:
            self._logger.warning(event, path=str(self._path), error=str(error))
