"""Per-caller fixed-window rate limiting."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window.
        reset_at: Epoch seconds at which the window resets.
    """

    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter(Protocol):
    async def check_rate_limit(self, key: str, limit: int) -> RateLimitDecision:
        """Count one request against ``key`` and decide whether it is allowed."""


class InMemoryRateLimiter:
    """In-process fixed-window counter.

    Each request increments the counter for its window, including requests
    that end up rejected. The check-and-increment is atomic under a lock.
    """

    def __init__(self, window_seconds: float = 60.0, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.clock = clock
        self._counts: dict[tuple[str, int], int] = {}
        self._lock = asyncio.Lock()

    async def check_rate_limit(self, key: str, limit: int) -> RateLimitDecision:
        now = self.clock()
        window = int(now // self.window_seconds)
        reset_at = (window + 1) * self.window_seconds

        async with self._lock:
            # Drop counters from windows that have already ended
            for stale in [k for k in self._counts if k[1] < window]:
                del self._counts[stale]
            count = self._counts.get((key, window), 0) + 1
            self._counts[(key, window)] = count

        allowed = count <= limit
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} ({count}/{limit})")
        return RateLimitDecision(
            allowed=allowed,
            remaining=max(0, limit - count),
            reset_at=reset_at,
        )
