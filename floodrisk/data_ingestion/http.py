"""
HTTP helpers shared by the upstream clients.

Retries live in an explicit policy object rather than in each call site.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

import requests

from floodrisk.core.errors import UnexpectedShape, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "floodrisk/0.1 (flood risk engine)"
REQUEST_TIMEOUT = 10

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, connection failures, HTTP 429 and 5xx are worth another attempt."""
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        if response is None:
            return False
        return response.status_code == 429 or response.status_code >= 500
    return False


class RetryPolicy:
    """
    Run a callable up to ``max_attempts`` times.

    ``delays`` is the backoff schedule between attempts; the last entry is
    reused once the schedule runs out. Non-retryable errors are raised
    immediately, and the final error is raised unchanged on exhaustion.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delays: Sequence[float] = (0.5,),
        retryable: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delays = tuple(delays) or (0.0,)
        self.retryable = retryable
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return self.delays[min(attempt - 1, len(self.delays) - 1)]

    def call(self, fn: Callable[[], T], description: str = "request") -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")


def get_json(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Any:
    """
    GET a JSON document with retries.

    Raises:
        UpstreamTimeout if the last attempt timed out.
        UpstreamUnavailable on any other request failure.
        UnexpectedShape if the body is not JSON.
    """
    policy = policy or RetryPolicy()
    headers = {"User-Agent": user_agent, "Accept": "application/geo+json, application/json"}

    def attempt() -> requests.Response:
        resp = requests.get(url, params=params, headers=headers, timeout=timeout)
        resp.raise_for_status()
        return resp

    try:
        resp = policy.call(attempt, description=f"GET {url}")
    except requests.Timeout as exc:
        logger.error("Request to %s timed out after %d attempts", url, policy.max_attempts)
        raise UpstreamTimeout(f"Timed out fetching {url}", exc) from exc
    except requests.RequestException as exc:
        logger.error("Request to %s failed: %s", url, exc)
        raise UpstreamUnavailable(f"Request to {url} failed: {exc}", exc) from exc

    try:
        return resp.json()
    except ValueError as exc:
        logger.error("Invalid JSON from %s: %s", url, exc)
        raise UnexpectedShape(f"Invalid JSON from {url}", exc) from exc
