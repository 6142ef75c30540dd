"""
Rate limiting implementations for controlling per-provider request rates.

Provides coroutine-safe rate limiters to ensure compliance with provider
usage policies (e.g. Nominatim's one request per second).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Mapping, Optional

from .base import RateLimiter
from .config import ProviderConfig

logger = logging.getLogger(__name__)


class IntervalRateLimiter(RateLimiter):
    """
    Minimum-interval rate gate, one gate per provider id.

    `acquire` suspends until at least the provider's interval has elapsed
    since its last granted acquisition, then records the new grant time.
    The check and the record happen under a per-provider `asyncio.Lock`,
    so concurrent callers are granted strictly one after another.
    """

    def __init__(
        self,
        intervals: Optional[Mapping[str, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate gate.

        Args:
            intervals: Minimum seconds between grants, keyed by provider id
            clock: Monotonic time source in seconds
            sleep: Coroutine used to wait (injectable for simulated clocks)
        """
        self.intervals: dict[str, float] = {}
        for provider_id, interval in (intervals or {}).items():
            self.set_interval(provider_id, interval)
        self.clock = clock
        self.sleep = sleep
        self._last_grant: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_configs(cls, configs: Iterable[ProviderConfig], **kwargs) -> "IntervalRateLimiter":
        return cls({c.name: c.rate_limit_s for c in configs}, **kwargs)

    def set_interval(self, provider_id: str, interval: float) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.intervals[provider_id] = float(interval)

    def last_grant(self, provider_id: str) -> Optional[float]:
        return self._last_grant.get(provider_id)

    def _lock_for(self, provider_id: str) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock

    async def acquire(self, provider_id: str) -> None:
        interval = self.intervals.get(provider_id, 0.0)
        if interval <= 0:
            self._last_grant[provider_id] = self.clock()
            return

        async with self._lock_for(provider_id):
            last = self._last_grant.get(provider_id)
            if last is not None:
                # Loop: the event loop may wake a sleeper marginally early.
                while True:
                    delay_needed = last + interval - self.clock()
                    if delay_needed <= 0:
                        break
                    logger.debug(f"Rate limit {provider_id}: waiting {delay_needed * 1000:.0f}ms")
                    await self.sleep(delay_needed)
            self._last_grant[provider_id] = self.clock()


class NoOpRateLimiter(RateLimiter):
    """
    Rate limiter that does nothing (for testing/development).

    Useful when you want to disable rate limiting without changing code.
    """

    async def acquire(self, provider_id: str) -> None:
        """Do nothing."""
        pass
