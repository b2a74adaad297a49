"""
TTL cache and per-endpoint rate gate.

Both take an injectable clock so tests can control time. Values are treated
as immutable once written; concurrent writers for the same key simply
overwrite each other.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class TTLCache:
    def __init__(self, default_ttl: float = 600.0, clock: Clock = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, ttl, value = entry
            if self._clock() - stored_at < ttl:
                return value
            self._entries.pop(key, None)
            return None

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value and sweep out every entry that has already expired."""
        with self._lock:
            now = self._clock()
            self._cleanup(now)
            self._entries[key] = (now, self.default_ttl if ttl is None else ttl, value)

    def _cleanup(self, now: float) -> None:
        expired_keys = [key for key, (stored_at, ttl, _) in self._entries.items() if now - stored_at >= ttl]
        for key in expired_keys:
            del self._entries[key]
        if expired_keys:
            logger.debug("Cleaned up %d expired cache entries", len(expired_keys))

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """Enforces a minimum interval between calls per logical endpoint class."""

    DEFAULT_INTERVAL = 1.0

    def __init__(self, min_intervals: Optional[Dict[str, float]] = None, clock: Clock = time.monotonic) -> None:
        self.min_intervals = dict(min_intervals or {})
        self._clock = clock
        self._last_call: Dict[str, float] = {}

    def interval(self, endpoint: str) -> float:
        return self.min_intervals.get(endpoint, self.DEFAULT_INTERVAL)

    def allow(self, endpoint: str) -> bool:
        now = self._clock()
        last = self._last_call.get(endpoint)
        if last is not None and now - last < self.interval(endpoint):
            return False
        self._last_call[endpoint] = now
        return True

    def retry_after(self, endpoint: str) -> float:
        """Seconds until the gate for ``endpoint`` opens again."""
        last = self._last_call.get(endpoint)
        if last is None:
            return 0.0
        return max(0.0, self.interval(endpoint) - (self._clock() - last))
