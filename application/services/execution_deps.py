# application/services/execution_deps.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Protocol

from application.ports.logger import LoggerPort
from application.ports.tester_log import TesterLogPort
from domain.settings import TesterSettings


class SettingsProviderPort(Protocol):
    def get(self) -> TesterSettings:
        ...


class UrlResolverPort(Protocol):
    def resolve_url(self, url: str) -> str:
        ...


@dataclass(frozen=True)
class ExecutionDeps:
    settings_provider: SettingsProviderPort
    logger: LoggerPort
    tester_log: TesterLogPort

    # 設定は実行中でも変更され得るので、毎回 provider から読む
    def settings(self) -> TesterSettings:
        return self.settings_provider.get()

    def with_logger(self, logger: LoggerPort) -> "ExecutionDeps":
        return replace(self, logger=logger)
