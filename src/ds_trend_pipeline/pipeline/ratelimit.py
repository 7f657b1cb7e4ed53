import asyncio
import logging
import time
from typing import Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FixedDelayLimiter:
    """Enforce a minimum gap between consecutive calls to one source.

    The first call passes immediately; each later call waits until ``delay``
    seconds have passed since the previous call was let through. No bursts.
    """

    def __init__(self, delay: float, clock: Clock | None = None, name: str = ""):
        self.delay = max(delay, 0.0)
        self.name = name
        self._clock = clock or SystemClock()
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self._last is not None:
                remaining = self._last + self.delay - self._clock.monotonic()
                if remaining > 0:
                    logger.debug("Rate limit %s: sleeping %.2fs", self.name or "-", remaining)
                    await self._clock.sleep(remaining)
            self._last = self._clock.monotonic()
