"""Exception taxonomy shared by the relay services and the client helpers."""

from __future__ import annotations

# HTTP status codes the push provider uses for endpoints that no longer exist
PUSH_GONE_STATUS_CODES = frozenset({404, 410})


class InprotoError(RuntimeError):
    """Base exception for every inproto failure."""


class ValidationError(InprotoError):
    """Raised when a request is missing fields or carries malformed values.

    Nothing has been written when this is raised.
    """


class AuthError(InprotoError):
    """Raised when a proof of ownership is missing, expired or invalid."""


class NotFoundError(InprotoError):
    """Raised when an operation needs a binding that does not exist."""


class StorageError(InprotoError):
    """Raised when durable storage could not be read or written.

    The enclosing transaction has been rolled back.
    """


class PushDeliveryError(InprotoError):
    """Raised by a push transport when a notification could not be delivered."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def permanent(self) -> bool:
        """True if the provider reports the endpoint as gone."""
        return self.status_code in PUSH_GONE_STATUS_CODES
