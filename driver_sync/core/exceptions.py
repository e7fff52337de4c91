"""Exception hierarchy for the driver sync core.

Nothing here is fatal: every error is recoverable and ends up on the
alert stream as "stale view, user may retry".
"""

from typing import Any


class DriverSyncError(Exception):
    """Base exception for all driver sync errors."""

    kind = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(DriverSyncError):
    """The request never produced a usable response."""

    kind = "transport"


class NetworkError(TransportError):
    """Network-related failures (timeout, connection refused, DNS)."""

    pass


class ServiceUnavailableError(TransportError):
    """Backend answered with a 5xx status."""

    pass


class RequestFailedError(TransportError):
    """Backend answered with a non-2xx status below 500."""

    pass


class MalformedResponseError(TransportError):
    """Response body was not JSON or did not match the expected shape."""

    pass


class PermanentError(DriverSyncError):
    """Errors that will not go away by repeating the same request."""

    pass


class BusinessRejectedError(PermanentError):
    """Well-formed response carrying ``success: false``."""

    kind = "rejected"


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    kind = "configuration"
