"""Named request pacing shared by every client of a remote resource."""

from __future__ import annotations

import logging
import threading

from aiolimiter import AsyncLimiter

logger = logging.getLogger(__name__)

TMDB_RATE_LIMIT = 3
TRAKT_RATE_LIMIT = 3
TVMAZE_RATE_LIMIT = 2
TVDB_RATE_LIMIT = 3


class RateLimiter:
    """Paces callers to at most ``rate`` operations per second.

    The underlying bucket holds a single token, so a caller that has been idle
    proceeds immediately but can never bank capacity to burst ahead later.
    """

    def __init__(self, name: str, rate: float):
        if rate <= 0:
            raise ValueError("Rate limits must be positive")
        self.name = name
        self.rate = rate
        self._limiter = AsyncLimiter(1, 1 / rate)

    async def take(self) -> None:
        """Wait until the next operation is allowed to start."""

        await self._limiter.acquire()

    def __repr__(self) -> str:
        return f"RateLimiter(name={self.name!r}, rate={self.rate})"


class RateLimiterRegistry:
    """Registry handing out one shared limiter per resource name."""

    def __init__(self) -> None:
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def acquire(self, name: str, rate: float) -> RateLimiter:
        """Return the limiter for ``name``, creating it at ``rate`` if missing.

        The first caller decides the rate; later callers asking for a different
        rate share the existing limiter unchanged.
        """

        key = name.strip().lower()
        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = RateLimiter(key, rate)
                self._limiters[key] = limiter
                logger.debug("Created rate limiter %s at %s/s", key, rate)
            elif limiter.rate != rate:
                logger.debug(
                    "Rate limiter %s already exists at %s/s, ignoring requested %s/s",
                    key,
                    limiter.rate,
                    rate,
                )
        return limiter

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return name.strip().lower() in self._limiters

    def __len__(self) -> int:
        with self._lock:
            return len(self._limiters)
