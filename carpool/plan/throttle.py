from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class RateLimiter:
    """
    Enforces a minimum spacing between calls made through one instance.

    Each caller reserves the next free slot before sleeping, so concurrent
    tasks on the same event loop are spaced out rather than released together.
    """

    def __init__(
        self,
        min_interval_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.min_interval_s = max(0.0, float(min_interval_s))
        self._clock = clock
        self._sleep = sleep
        self._next_slot: Optional[float] = None
        self.request_count = 0

    async def wait(self) -> None:
        now = self._clock()
        slot = now if self._next_slot is None else max(now, self._next_slot)
        self._next_slot = slot + self.min_interval_s
        self.request_count += 1
        if slot > now:
            await self._sleep(slot - now)


async def run_blocking(func: Callable[..., T], *args: Any, timeout: float) -> T:
    """Run a blocking call in a worker thread, failing with asyncio.TimeoutError after `timeout`."""
    return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
