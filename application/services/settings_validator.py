# application/services/settings_validator.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from domain.exceptions import ValidationError
from domain.scenario import TestScenario
from domain.settings import TesterSettings


@dataclass(frozen=True)
class RunPreconditionValidator:
    """
    Configuration checks done before a run is started.
    """

    def validate(self, settings: TesterSettings, scenarios: Sequence[TestScenario]) -> None:
        self.validate_settings(settings)
        if not scenarios:
            raise ValidationError("Load the scenario list first.")

    def validate_settings(self, settings: TesterSettings) -> None:
        if not settings.prepare_url or not settings.complete_url:
            raise ValidationError("Fill in the Prepare URL and Complete URL.")
        if not settings.service_id or not settings.secret_key:
            raise ValidationError("Set service_id and secret_key in the settings.")
