"""
Error taxonomy for the flood risk engine.

Each error carries the code and HTTP status used in the response envelope.
"""

from __future__ import annotations

from typing import Any, Optional


class FloodRiskError(Exception):
    """Base class for errors surfaced to callers."""

    code = "GENERAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(FloodRiskError):
    """Malformed coordinates, radius or request body. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class RateLimitExceeded(FloodRiskError):
    """The internal rate gate for an endpoint class tripped."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, endpoint: str, retry_after: Optional[float] = None) -> None:
        super().__init__(
            f"Too many {endpoint} requests. Please wait a moment and try again.",
            details={"endpoint": endpoint, "retryAfter": retry_after},
        )
        self.endpoint = endpoint
        self.retry_after = retry_after


class UpstreamUnavailable(FloodRiskError):
    """An external service failed after all retry attempts."""

    code = "EXTERNAL_API_ERROR"
    status_code = 502

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message, details=str(last_error) if last_error else None)
        self.last_error = last_error


class UpstreamTimeout(UpstreamUnavailable):
    code = "EXTERNAL_API_TIMEOUT"
    status_code = 408


class UnexpectedShape(UpstreamUnavailable):
    """An external payload was malformed or missing expected fields."""


class GeneralError(FloodRiskError):
    pass
