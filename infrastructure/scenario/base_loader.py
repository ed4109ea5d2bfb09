# infrastructure/scenario/base_loader.py
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from domain.exceptions import ValidationError
from domain.fixture_override import DEFAULT_FIXTURE_OVERRIDES, parse_fixture_overrides
from domain.scenario import ScenarioAction, ScenarioDefinition, ScenarioSet


class ScenarioLoadError(Exception):
    pass


class ScenarioLoaderBase(ABC):
    """
    Load a scenario file.

    Two shapes are accepted::

        [ {scenario}, ... ]                       # template.json
        {"scenarios": [...], "fixture_overrides": {"77816": {...}}}

    A bare list uses the default fixture override table.
    """

    def load_from_file(self, path: Union[str, Path]) -> ScenarioSet:
        p = Path(path)
        if not p.exists():
            raise ScenarioLoadError(f"Scenario file not found: {path}")

        try:
            data = self._load_file(p)
        except ScenarioLoadError:
            raise
        except Exception as e:
            raise ScenarioLoadError(f"Scenario file is not readable: {path}: {e}") from e

        if data is None:
            raise ScenarioLoadError(f"Scenario file is empty: {path}")
        return self.load_from_data(data)

    def load_from_data(self, data: Any) -> ScenarioSet:
        if isinstance(data, list):
            return ScenarioSet(
                definitions=self._load_definitions(data),
                fixture_overrides=dict(DEFAULT_FIXTURE_OVERRIDES),
            )

        if isinstance(data, Mapping):
            items = data.get("scenarios")
            if not isinstance(items, list):
                raise ScenarioLoadError("'scenarios' must be a list of scenarios")
            overrides = DEFAULT_FIXTURE_OVERRIDES
            if data.get("fixture_overrides") is not None:
                try:
                    overrides = parse_fixture_overrides(data["fixture_overrides"])
                except ValidationError as e:
                    raise ScenarioLoadError(str(e)) from e
            return ScenarioSet(definitions=self._load_definitions(items), fixture_overrides=dict(overrides))

        raise ScenarioLoadError("Scenario file must contain a list of scenarios")

    def _load_definitions(self, items: List[Any]) -> List[ScenarioDefinition]:
        return [self.load_definition(item, i) for i, item in enumerate(items)]

    def load_definition(self, data: Any, position: int = 0) -> ScenarioDefinition:
        if not isinstance(data, Mapping):
            raise ScenarioLoadError(f"Scenario #{position + 1} must be an object")

        post = data.get("post", {})
        if post is None:
            post = {}
        if not isinstance(post, Mapping):
            raise ScenarioLoadError(f"Scenario #{position + 1}: 'post' must be an object")

        return ScenarioDefinition(
            description=str(data.get("description", "") or ""),
            action=ScenarioAction.normalize(data.get("action")),
            sending_error_code=self._as_int(data.get("sending_error_code", 0), "sending_error_code", position),
            expected_error_code=self._as_int(data.get("expected_error_code", 0), "expected_error_code", position),
            go_to_script=self._as_optional_int(data.get("go_to_script"), "go_to_script", position),
            post=dict(post),
        )

    def _as_int(self, value: Any, name: str, position: int) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ScenarioLoadError(f"Scenario #{position + 1}: '{name}' must be an integer, got {value!r}")

    def _as_optional_int(self, value: Any, name: str, position: int) -> Optional[int]:
        if value is None or value == "":
            return None
        return self._as_int(value, name, position)

    @abstractmethod
    def _load_file(self, path: Path) -> Any:
        ...


def dump_definition(definition: ScenarioDefinition) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "description": definition.description,
        "action": definition.action.value,
        "sending_error_code": definition.sending_error_code,
        "expected_error_code": definition.expected_error_code,
        "post": dict(definition.post),
    }
    if definition.go_to_script is not None:
        out["go_to_script"] = definition.go_to_script
    return out
