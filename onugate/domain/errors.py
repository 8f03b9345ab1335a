"""Gateway error taxonomy.

Every failure the core can surface derives from ``GatewayError`` so callers
can catch the family in one place and map it to their own wire format.
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base class for failures raised by the gateway core."""


class TransportError(GatewayError):
    """Network failure, timeout, 5xx response or non-parseable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UpstreamRejection(GatewayError):
    """The upstream answered ``status: false`` for a non-rate-limit reason."""

    def __init__(self, message: str, result: Optional[Any] = None):
        self.result = result
        super().__init__(message)


class RateLimitExceeded(GatewayError):
    """The upstream kept signalling throttling after every retry attempt."""

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(message)


class NoCacheAvailable(GatewayError):
    """A cache fallback was requested but the key was never fetched successfully."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No cached data available for '{key}'")


class CacheBackendError(GatewayError):
    """A cache backend failed to read or write its storage."""
