"""Module layer — Per-module token bucket rate limiter.

Each limiter owns ``capacity`` tokens.  A token is consumed when a permit is
granted and returns to the bucket exactly ``refill_interval`` seconds later,
so no window of length ``refill_interval`` ever sees more than ``capacity``
permits.  With ``capacity=1`` this is a strict one-request-per-interval gate.

One limiter is bound to exactly one module and is never shared; waiting
callers of the same limiter are served first-come-first-served.

Usage::

    limiter = RateLimiter.for_config(config)
    permit = await limiter.acquire()          # suspends until a token is free
    permit = limiter.try_acquire()            # None when the budget is spent
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from media_collector.config import ModuleConfig
from media_collector.exceptions import RateLimitExceededError
from media_collector.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Permit:
    """Proof that one provider call may proceed."""

    limiter: str
    granted_at: float


class RateLimiter:
    """Token bucket bound to a single module.

    Args:
        name:            Owning module name (used in logs and errors).
        capacity:        Tokens available per ``refill_interval``.
        refill_interval: Seconds after which a consumed token returns.
        clock:           Monotonic time source, injectable for tests.
        sleep:           Coroutine used to wait for a token, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        capacity: int,
        refill_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if not math.isfinite(refill_interval) or refill_interval <= 0:
            raise ValueError(f"refill_interval must be > 0, got {refill_interval}")
        self.name = name
        self.capacity = capacity
        self.refill_interval = refill_interval
        self._clock = clock
        self._sleep = sleep
        # Grant timestamps still inside the current window, oldest first.
        self._grants: deque[float] = deque()
        self._waiters = asyncio.Lock()
        self.granted_total = 0

    @classmethod
    def for_config(
        cls,
        config: ModuleConfig,
        default_rate: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "RateLimiter":
        """Build a limiter from ``rate_limit`` requests per ``rate_interval``.

        *default_rate* is used when the config leaves ``rate_limit`` unset.
        Fractional rates keep one token and stretch the interval, so
        ``rate_limit=0.5, rate_interval=1`` grants one permit every 2 seconds.
        """
        rate = config.rate_limit if config.rate_limit is not None else default_rate
        if rate is None or not math.isfinite(rate) or rate <= 0:
            raise ValueError(f"module '{config.name}' has no finite positive rate_limit")
        capacity = max(1, math.floor(rate))
        interval = config.rate_interval * capacity / rate
        return cls(config.name, capacity, interval, clock=clock, sleep=sleep)

    # ------------------------------------------------------------------
    # Permits
    # ------------------------------------------------------------------

    async def acquire(self) -> Permit:
        """Wait until a token is available, then consume it."""
        async with self._waiters:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._grants) < self.capacity:
                    return self._grant(now)
                delay = self._grants[0] + self.refill_interval - now
                log.debug("rate_limiter_waiting", limiter=self.name, delay=round(delay, 4))
                await self._sleep(max(delay, 0.0))

    def try_acquire(self) -> Permit | None:
        """Consume a token if one is free right now; never waits.

        Returns None while other callers are queued in :meth:`acquire`, so a
        non-blocking caller never overtakes a waiting one.
        """
        if self._waiters.locked():
            return None
        now = self._clock()
        self._prune(now)
        if len(self._grants) >= self.capacity:
            return None
        return self._grant(now)

    def acquire_or_raise(self) -> Permit:
        """Like :meth:`try_acquire` but raise :class:`RateLimitExceededError`."""
        permit = self.try_acquire()
        if permit is None:
            raise RateLimitExceededError(
                limiter=self.name,
                capacity=self.capacity,
                retry_after=self.wait_time(),
            )
        return permit

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def available(self) -> int:
        """Tokens that could be granted right now."""
        self._prune(self._clock())
        return self.capacity - len(self._grants)

    def wait_time(self) -> float:
        """Seconds until the next token returns (0.0 if one is free)."""
        now = self._clock()
        self._prune(now)
        if len(self._grants) < self.capacity:
            return 0.0
        return max(self._grants[0] + self.refill_interval - now, 0.0)

    def reset(self) -> None:
        """Refill the bucket completely."""
        self._grants.clear()

    def __repr__(self) -> str:
        return (
            f"RateLimiter(name={self.name!r}, capacity={self.capacity}, "
            f"refill_interval={self.refill_interval:g})"
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _grant(self, now: float) -> Permit:
        self._grants.append(now)
        self.granted_total += 1
        return Permit(limiter=self.name, granted_at=now)

    def _prune(self, now: float) -> None:
        cutoff = now - self.refill_interval
        while self._grants and self._grants[0] <= cutoff:
            self._grants.popleft()
