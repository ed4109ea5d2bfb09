# application/services/request_context_builder.py
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from application.services.execution_deps import UrlResolverPort
from application.services.signature import sign
from application.services.template_renderer import TemplateRenderer, stringify
from domain.fixture_override import DEFAULT_FIXTURE_OVERRIDES, FixtureOverride, FixtureOverrideTable
from domain.run import ReferenceTable
from domain.scenario import ScenarioAction, TestScenario
from domain.settings import TesterSettings

SIGN_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_NO_OVERRIDE = FixtureOverride()


def random_transaction_id() -> str:
    return str(random.randint(999_999_999, 999_999_999_000))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestContext:
    url: str
    payload: Dict[str, str]
    merchant_prepare_id_used: str


class RequestContextBuilder:
    """
    Build the outbound form fields and target URL for one scenario.
    """

    def __init__(
        self,
        renderer: TemplateRenderer,
        url_resolver: UrlResolverPort,
        id_generator: Callable[[], str] = random_transaction_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._renderer = renderer
        self._url_resolver = url_resolver
        self._new_id = id_generator
        self._clock = clock

    def build(
        self,
        scenario: TestScenario,
        settings: TesterSettings,
        previous_merchant_prepare_id: str,
        merchant_prepare_id_by_correlation_id: Mapping[str, str],
        references: ReferenceTable,
        fixture_overrides: Optional[FixtureOverrideTable] = None,
    ) -> RequestContext:
        overrides = DEFAULT_FIXTURE_OVERRIDES if fixture_overrides is None else fixture_overrides
        is_complete = scenario.action == ScenarioAction.COMPLETE

        payload: Dict[str, str] = {}
        for key, value in scenario.post.items():
            if value is None:
                continue
            payload[key] = self._renderer.resolve(stringify(value), references)

        payload["service_id"] = settings.service_id or payload.get("service_id") or ""
        correlation_id = (payload.get("click_trans_id") or "").strip()
        override = overrides.get(correlation_id, _NO_OVERRIDE)

        if override.random_merchant_trans_id:
            payload["merchant_trans_id"] = self._new_id()
        else:
            payload["merchant_trans_id"] = settings.merchant_trans_id or payload.get("merchant_trans_id") or ""

        payload["amount"] = (payload.get("amount") or "").strip() or settings.amount or ""

        merchant_prepare_id_used = ""
        if is_complete:
            merchant_prepare_id_used = self._pick_prepare_id(
                payload,
                override,
                previous_merchant_prepare_id,
                merchant_prepare_id_by_correlation_id,
            )
            if merchant_prepare_id_used:
                payload["merchant_prepare_id"] = merchant_prepare_id_used

        payload["error"] = str(scenario.sending_error_code)
        payload["error_note"] = payload.get("error_note") or "Ok"
        payload["click_paydoc_id"] = settings.click_paydoc_id or payload.get("click_paydoc_id") or ""

        if settings.merchant_user_id:
            payload["merchant_user_id"] = settings.merchant_user_id

        if override.fixed_amount is not None:
            payload["amount"] = override.fixed_amount

        payload["sign_time"] = payload.get("sign_time") or self._clock().strftime(SIGN_TIME_FORMAT)

        if override.fixed_signature is not None:
            payload["sign_string"] = override.fixed_signature
        else:
            payload["sign_string"] = sign(
                payload.get("click_trans_id", ""),
                payload["service_id"],
                settings.secret_key,
                payload["merchant_trans_id"],
                merchant_prepare_id_used,
                payload["amount"],
                payload.get("action", ""),
                payload["sign_time"],
                include_prepare_id=is_complete,
            )

        raw_url = settings.complete_url if is_complete else settings.prepare_url
        return RequestContext(
            url=self._url_resolver.resolve_url(raw_url),
            payload=payload,
            merchant_prepare_id_used=merchant_prepare_id_used,
        )

    def _pick_prepare_id(
        self,
        payload: Dict[str, str],
        override: FixtureOverride,
        previous: str,
        by_correlation_id: Mapping[str, str],
    ) -> str:
        # 優先順位: 強制乱数 > post で明示 > 別シナリオの prepare id > 直前の prepare id
        if override.random_merchant_prepare_id:
            return self._new_id()

        explicit = (payload.get("merchant_prepare_id") or "").strip()
        if explicit:
            return explicit

        if override.prepare_id_from:
            return by_correlation_id.get(override.prepare_id_from) or previous

        return previous
