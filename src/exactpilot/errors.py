"""
ExactPilot error taxonomy.

Every expected failure surfaces as one of these exceptions carrying a
human-readable message. ``Cancelled`` is a user decision, not a fault.
"""

from __future__ import annotations

from typing import Any


class ExactPilotError(Exception):
    """Base class for all ExactPilot failures."""


class ConfigError(ExactPilotError):
    """Startup misconfiguration: missing secrets or no usable data directory."""


class AuthError(ExactPilotError):
    """Token exchange or refresh failed. The user has to authenticate again."""


class TransportError(ExactPilotError):
    """Connection or timeout failure. Safe to retry."""


class ApiError(ExactPilotError):
    """Non-2xx response, or a 2xx response carrying an ``error`` payload."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body


class DecodeError(ExactPilotError):
    """Response did not have the expected shape."""


class Cancelled(ExactPilotError):
    """Operation cancelled by user."""

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)


class FetchInProgressError(ExactPilotError):
    """A cancellable fetch is already registered."""


def describe_provider_error(error: Any) -> str:
    """Flatten an Exact Online ``error`` payload to its message text.

    The provider sends either a plain string or
    ``{"code": "...", "message": {"lang": "...", "value": "..."}}``.
    """
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, dict) and message.get("value"):
            return str(message["value"])
        if message:
            return str(message)
        description = error.get("error_description")
        if description:
            return str(description)
    return str(error)
