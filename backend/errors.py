"""
Errors that cross the core's boundary.

Only snapshot-fetch and authentication failures are surfaced to the caller.
Transport hiccups (dropped channel, bad frame) are recovered inside the
WebSocket client and never raised to application code.
"""

from __future__ import annotations
from typing import Any


class BackendError(Exception):
    """Base class for errors talking to the EVSCallPro backend."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class AuthRejectedError(BackendError):
    """Backend refused the credentials (HTTP 401). Terminal for the session."""


class TokenInvalidError(AuthRejectedError):
    """
    The bearer token itself was rejected. Reconnecting with the same token is
    pointless; an external re-login flow must issue a new one.
    """


class SnapshotFetchError(BackendError):
    """The application-data snapshot could not be fetched."""


class FrameDecodeError(BackendError):
    """A WebSocket frame was not valid JSON or lacked required fields."""
