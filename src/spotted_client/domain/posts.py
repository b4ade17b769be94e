"""Models for the post REST endpoints and gateway errors."""

from typing import Any

from pydantic import BaseModel


class ApiEnvelope(BaseModel):
    """Response wrapper returned by every Spotted API endpoint."""

    result: str
    response: Any = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.result == "ok"


class GatewayError(Exception):
    """Base class for failed remote calls."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PublishFailed(GatewayError):
    """Raised when a workout post could not be created."""


class LikeSyncFailed(GatewayError):
    """Raised when a like or unlike call was not applied."""
