"""Client error types for Panono camera interactions."""

from __future__ import annotations

from enum import Enum


class TransportFailure(Enum):
    """Why the control channel transport failed."""

    REFUSED = "refused"
    RESET = "reset"
    TIMEOUT = "timeout"
    HANDSHAKE = "handshake"


class PanonoClientError(Exception):
    """Base error for Panono client failures."""


class PanonoTimeout(PanonoClientError):
    """Timeout while communicating with the camera."""

    cause = TransportFailure.TIMEOUT


class PanonoConnectionError(PanonoClientError):
    """Network connection to the camera failed."""

    def __init__(
        self, message: str, cause: TransportFailure = TransportFailure.RESET
    ) -> None:
        super().__init__(message)
        self.cause = cause


class PanonoHandshakeError(PanonoClientError):
    """WebSocket handshake failed."""

    cause = TransportFailure.HANDSHAKE


class PanonoResourceError(PanonoClientError):
    """The host ran out of sockets or buffers; the session cannot continue."""


class PanonoDeviceUnreachable(PanonoClientError):
    """All connection attempts to the camera were exhausted."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PanonoResponseError(PanonoClientError):
    """HTTP response error from the camera file endpoint."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class PanonoFileError(PanonoClientError):
    """A local file could not be read or written."""


class ResponseParseError(PanonoClientError):
    """A camera payload did not have the expected shape."""


class ConfigError(Exception):
    """Configuration file is missing, unreadable or invalid."""
