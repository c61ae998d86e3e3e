"""Request pacing for venue HTTP APIs."""

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, Optional

from loguru import logger


class RateLimiter:
    """Serializes calls and spaces their starts by a minimum interval.

    One call runs at a time. The interval is derived from the venue's
    requests-per-minute ceiling reduced by a safety factor.
    """

    def __init__(self, max_requests_per_minute: int = 1200, safety_factor: float = 0.9,
                 min_interval_s: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        if min_interval_s is None:
            allowed = max(1, math.floor(max_requests_per_minute * safety_factor))
            min_interval_s = math.ceil(60000 / allowed) / 1000
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None
        self.calls = 0

    async def schedule(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run fn once its turn comes; exceptions propagate to the caller."""
        async with self._lock:
            if self._last_start is not None:
                wait = self.min_interval_s - (self._clock() - self._last_start)
                if wait > 0:
                    logger.trace(f"Rate limiter sleeping {wait * 1000:.0f} ms")
                    await asyncio.sleep(wait)
            self._last_start = self._clock()
            self.calls += 1
            return await fn(*args, **kwargs)
