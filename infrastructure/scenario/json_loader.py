# infrastructure/scenario/json_loader.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from infrastructure.scenario.base_loader import ScenarioLoaderBase


class JsonScenarioLoader(ScenarioLoaderBase):
    def _load_file(self, path: Path) -> Any:
        # Windows で保存された template.json は BOM 付きのことがある
        with path.open("r", encoding="utf-8-sig") as handle:
            return json.load(handle)
