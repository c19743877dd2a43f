"""Time source used by the scheduler and runners."""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time plus an asynchronous delay."""

    def now(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class AsyncioClock:
    """Wall clock backed by time.monotonic and asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


async def sleep_until(clock: Clock, deadline: float) -> None:
    """Sleep until the clock reaches deadline; returns at once if it passed."""
    remaining = deadline - clock.now()
    if remaining > 0:
        await clock.sleep(remaining)
