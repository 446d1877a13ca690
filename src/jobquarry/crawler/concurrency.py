"""
Adaptive concurrency limiter.

Starts at the configured floor and opens one more slot after a run of
successful fetches; every blocked fetch closes one slot again, never below
the floor.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

from jobquarry.observability.metrics import METRICS

logger = structlog.get_logger(__name__)


class AdaptiveConcurrencyLimiter:
    """Semaphore whose size moves between ``min_concurrency`` and ``max_concurrency``."""

    def __init__(self, min_concurrency: int, max_concurrency: int, scale_up_after: int = 5) -> None:
        if min_concurrency < 1 or min_concurrency > max_concurrency:
            raise ValueError("require 1 <= min_concurrency <= max_concurrency")
        self.min_concurrency = min_concurrency
        self.max_concurrency = max_concurrency
        self.scale_up_after = scale_up_after
        self._limit = min_concurrency
        self._active = 0
        self._consecutive_successes = 0
        self._condition = asyncio.Condition()
        self._publish()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    def _publish(self) -> None:
        if "concurrency_limit" in METRICS:
            METRICS["concurrency_limit"].set(self._limit)

    async def acquire(self) -> None:
        async with self._condition:
            await self._condition.wait_for(lambda: self._active < self._limit)
            self._active += 1

    async def release(self) -> None:
        async with self._condition:
            self._active -= 1
            self._condition.notify_all()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            await self.release()

    async def record_success(self) -> None:
        async with self._condition:
            self._consecutive_successes += 1
            if self._consecutive_successes >= self.scale_up_after and self._limit < self.max_concurrency:
                self._limit += 1
                self._consecutive_successes = 0
                self._publish()
                logger.debug("Concurrency raised", limit=self._limit)
                self._condition.notify_all()

    async def record_block(self) -> None:
        async with self._condition:
            self._consecutive_successes = 0
            if self._limit > self.min_concurrency:
                self._limit -= 1
                self._publish()
                logger.info("Concurrency lowered after block", limit=self._limit)

    def get_stats(self) -> Dict[str, int]:
        return {"limit": self._limit, "active": self._active, "min": self.min_concurrency, "max": self.max_concurrency}
