"""Exception taxonomy for the EduKit integration.

Defines a small hierarchy of exceptions used by the gateway, the registry
client, the sync controller and the service layer. These extend Home
Assistant's HomeAssistantError to ensure consistent behavior when surfaced
through the platform.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class EdukitError(HomeAssistantError):
    """Base exception for EduKit-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(EdukitError):
    """Raised when input payloads fail validation or violate invariants."""


class NotFoundError(EdukitError):
    """Raised when a requested local resource does not exist."""


class StorageError(EdukitError):
    """Raised when local storage operations fail or data is corrupted."""


class NetworkFailure(EdukitError):
    """Raised when a request could not be sent or returned a non-2xx status."""


class BackendRejected(EdukitError):
    """Raised when the backend answered with ``success: false``."""


class ParseFailure(EdukitError):
    """Raised when a response body is not JSON or has an unexpected shape."""


class PayloadTooLarge(EdukitError):
    """Raised while shaping a write whose inline image exceeds the size ceiling.

    Never escapes the gateway: the inline payload is dropped and a warning logged.
    """
