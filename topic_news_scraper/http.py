from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

import aiohttp


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/json,text/plain;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class TokenBucketRateLimiter:
    """Token bucket shared by every request the aggregator makes.

    The bucket holds ``capacity`` tokens and is topped up by ``capacity`` for
    each whole ``interval_seconds`` elapsed since the last refill. The refill
    and the deduction happen under one lock, so concurrent callers queue up
    instead of reading the same token count.
    """

    def __init__(
        self,
        capacity: int,
        interval_seconds: float,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._capacity = capacity
        self._interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._tokens = float(capacity)
        self._last_refill: Optional[float] = None

    @classmethod
    def per_minute(cls, requests_per_minute: int, **kwargs) -> "TokenBucketRateLimiter":
        return cls(requests_per_minute, 60.0 / requests_per_minute, **kwargs)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def available_tokens(self) -> float:
        return self._tokens

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def _refill(self, now: float) -> None:
        if self._last_refill is None:
            self._last_refill = now
            return
        elapsed = max(0.0, now - self._last_refill)
        added = math.floor(elapsed / self._interval) * self._capacity
        self._tokens = min(float(self._capacity), self._tokens + added)
        self._last_refill = max(self._last_refill, now)

    async def wait_for_token(self) -> None:
        async with self._lock:
            self._refill(self._now())
            if self._tokens < 1:
                wait_for = self._interval - (self._now() - self._last_refill)
                logger.debug("Rate limit reached, waiting %.2fs for a token", max(0.0, wait_for))
                await self._sleep(max(0.0, wait_for))
                # The wait ends on the refill boundary even if the clock reads
                # a hair short of it (float rounding, timers firing early).
                self._tokens = float(self._capacity)
                self._last_refill = max(self._last_refill, self._now())
            self._tokens -= 1


async def get_text(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout_seconds: float,
    user_agent: Optional[str] = None,
) -> str:
    """GET ``url`` and return the body; non-2xx responses raise ``ClientResponseError``."""

    headers = dict(DEFAULT_HEADERS)
    if user_agent:
        headers["User-Agent"] = user_agent
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with session.get(url, headers=headers, timeout=timeout) as r:
        r.raise_for_status()
        return await r.text(errors="ignore")
