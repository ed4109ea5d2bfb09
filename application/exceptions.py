# application/exceptions.py
from __future__ import annotations

from typing import Optional, Tuple


class DispatchError(Exception):
    """Base class for failures raised by the HTTP dispatcher."""


class EndpointNotConfiguredError(DispatchError):
    pass


class HttpStatusError(DispatchError):
    def __init__(
        self,
        message: str,
        status: int,
        status_text: str = "",
        body_preview: str = "",
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.status_text = status_text
        self.body_preview = body_preview
        self.server_message = server_message


class NetworkError(DispatchError):
    def __init__(self, message: str, reason: str, likely_causes: Tuple[str, ...] = ()):
        super().__init__(message)
        self.reason = reason
        self.likely_causes = likely_causes


class RunInProgressError(Exception):
    pass


class ScenarioNotFoundError(Exception):
    pass
