import asyncio
import contextlib
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """
    Shared request ticket accumulator.

    A background ticker adds one ticket every 60/R seconds; every outbound
    request spends one. Tickets are not capped, so after an idle period a burst
    of accumulated tickets can be spent at once: the sustained rate is bounded,
    the burst size is not.
    """

    def __init__(self, rate_per_minute: float):
        """
        Initialize the rate limiter. The ticker starts with start().

        Args:
            rate_per_minute: Requests per minute (R)
        """
        if rate_per_minute <= 0:
            raise ValueError(f"request rate must be positive, got {rate_per_minute}")
        self.rate_per_minute = rate_per_minute
        self.interval = 60.0 / rate_per_minute
        self._tickets = asyncio.Semaphore(0)
        self._ticker: Optional[asyncio.Task] = None
        self._issued = 0
        self._spent = 0

    def start(self):
        """Start the ticker on the running event loop."""
        if self._ticker is None:
            self._ticker = asyncio.get_running_loop().create_task(self._tick())
            logger.debug(f"Rate limiter started: one request every {self.interval:.2f}s")

    async def stop(self):
        """Stop the ticker. Accumulated tickets stay spendable."""
        if self._ticker is None:
            return
        self._ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._ticker
        self._ticker = None

    async def _tick(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            next_tick += self.interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            self._issued += 1
            self._tickets.release()

    async def acquire(self):
        """Take one request ticket, waiting until one is available."""
        await self._tickets.acquire()
        self._spent += 1

    @property
    def available(self) -> int:
        """Tickets accumulated and not yet spent"""
        return self._issued - self._spent

    def get_stats(self) -> Dict[str, float]:
        return {
            'rate_per_minute': self.rate_per_minute,
            'issued': self._issued,
            'spent': self._spent,
        }

    async def __aenter__(self) -> 'RequestRateLimiter':
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
