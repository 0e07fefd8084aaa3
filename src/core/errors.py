"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for every error raised on purpose by vkrelay."""


class TransportError(RelayError):
    """The feed could not be reached (network failure or timeout)."""


class ProtocolError(RelayError):
    """The feed answered with a malformed payload or an explicit error code."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class StorageError(RelayError):
    """The persistence engine failed; the current operation was rolled back."""


class ValidationError(RelayError):
    """A value supplied at a boundary is not acceptable."""


class DeliveryError(RelayError):
    """The downstream channel refused or failed to accept a post."""
