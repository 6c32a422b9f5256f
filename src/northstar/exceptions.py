"""Exceptions raised by the tracking core."""
from typing import Optional


class TrackingError(Exception):
    """Base class for tracking core errors."""


class TransportError(TrackingError):
    """A single request attempt failed."""


class RequestTimeout(TransportError):
    """The attempt did not finish before its timeout fired."""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(message)


class NetworkFailure(TransportError):
    """The attempt failed below the HTTP layer."""


class InvalidResponseBody(TransportError):
    """The server answered 2xx with a body that is not JSON."""


class HTTPStatusFailure(TransportError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: Optional[str] = None):
        super().__init__(f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}")
        self.status_code = status_code
        self.reason = reason


class PersistenceError(TrackingError):
    """The record store rejected or failed an operation."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
