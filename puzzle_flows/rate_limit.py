"""
Request pacing shared by every worker that talks to one explorer host.

A single "next allowed request time" is guarded by an asyncio.Lock and
advanced monotonically on every permitted request, so concurrent callers
queue up and the minimum interval holds no matter how many workers run.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Minimum-interval limiter.

    Usage:
        limiter = RateLimiter(min_interval=3.0, name="mempool.space")
        await limiter.acquire()   # returns when the request may be sent
    """

    def __init__(
        self,
        min_interval: float,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self.name = name
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._next_allowed: Optional[float] = None
        self._acquired = 0

    @property
    def acquired(self) -> int:
        """Number of permitted requests so far."""
        return self._acquired

    async def acquire(self) -> float:
        """
        Wait for this caller's slot.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            now = self._clock()
            waited = 0.0
            if self._next_allowed is not None and now < self._next_allowed:
                waited = self._next_allowed - now
                logger.debug(f"[{self.name}] Pacing request, waiting {waited:.2f}s")
                await self._sleep(waited)
                now = self._clock()

            start = now if self._next_allowed is None else max(now, self._next_allowed)
            self._next_allowed = start + self.min_interval
            self._acquired += 1
            return waited

    def __repr__(self) -> str:
        return f"<RateLimiter(name={self.name}, min_interval={self.min_interval})>"
