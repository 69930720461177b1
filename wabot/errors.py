"""Error taxonomy shared by the bot, the transport and the completion service."""

from __future__ import annotations

from enum import StrEnum


class WabotError(Exception):
    """Base class for all wabot errors."""


class ConfigurationError(WabotError):
    """Missing or invalid configuration (e.g. no API key, no profile)."""


class TransportError(WabotError):
    """The WhatsApp transport could not deliver a request."""


class NotConnectedError(TransportError):
    """Raised when sending while the connection is not ready."""


class CompletionErrorKind(StrEnum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


class CompletionError(WabotError):
    """The completion API failed. ``kind`` says how."""

    def __init__(self, kind: CompletionErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)
