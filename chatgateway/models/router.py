"""Model routing with health-checked failover for local backends."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .registry import ModelDescriptor, ProviderKind, default_model

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
HealthProbe = Callable[[], Awaitable[bool]]


@dataclass
class HealthCache:
    """Last known health of a backend and when it was checked.

    Attributes:
        ttl: Seconds a probe result stays valid.
        clock: Monotonic time source, injectable for tests.
        healthy: Result of the last probe.
        checked_at: Clock reading at the last probe, None if never probed.
    """

    ttl: float = 30.0
    clock: Clock = time.monotonic
    healthy: bool = True
    checked_at: Optional[float] = None

    def is_fresh(self) -> bool:
        if self.checked_at is None:
            return False
        return (self.clock() - self.checked_at) < self.ttl

    def record(self, healthy: bool) -> None:
        self.healthy = healthy
        self.checked_at = self.clock()


class ModelRouter:
    """Applies failover policy to resolved model descriptors.

    Non-local descriptors pass through. A local descriptor is kept only while
    its health probe reports healthy; otherwise the default remote model is
    substituted. Probe results are cached for the TTL and concurrent callers
    share a single in-flight probe.

    Example:
        >>> router = ModelRouter(probe=factory.get(ProviderKind.LOCAL).check_health)
        >>> descriptor = await router.failover(resolve_model("local:llama-3.1-70b"))
    """

    def __init__(
        self,
        probe: Optional[HealthProbe] = None,
        ttl: float = 30.0,
        clock: Clock = time.monotonic,
        fallback: Optional[ModelDescriptor] = None,
    ):
        self._probe = probe
        self.cache = HealthCache(ttl=ttl, clock=clock)
        self._lock = asyncio.Lock()
        self._fallback = fallback or default_model()

    @property
    def fallback(self) -> ModelDescriptor:
        """Model used for unknown ids and for failover."""
        return self._fallback

    async def local_healthy(self) -> bool:
        """Return the cached local health, probing when stale."""
        if self.cache.is_fresh():
            return self.cache.healthy

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.cache.is_fresh():
                return self.cache.healthy

            if self._probe is None:
                healthy = False
            else:
                try:
                    healthy = await self._probe()
                except Exception as e:
                    logger.debug(f"Local health probe raised: {e}")
                    healthy = False
            self.cache.record(healthy)
            return healthy

    async def failover(self, descriptor: ModelDescriptor) -> ModelDescriptor:
        """Return the descriptor to actually use for a turn."""
        if descriptor.provider != ProviderKind.LOCAL:
            return descriptor

        if await self.local_healthy():
            return descriptor

        logger.warning(
            f"Local model {descriptor.id} unhealthy, failing over to {self._fallback.id}"
        )
        return self._fallback
