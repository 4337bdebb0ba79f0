"""
LeaseWise Rate Limiting
=======================
Pacing for sequential calls to rate-limited external services.

Batch loops call `wait()` between requests; tests swap in `NoopRateLimiter`.
"""

import asyncio
from abc import ABC, abstractmethod


class RateLimiter(ABC):
    """Paces consecutive calls to an external capability."""

    @abstractmethod
    async def wait(self) -> None:
        """Block until the next call may be issued."""


class FixedDelayRateLimiter(RateLimiter):
    """Sleeps a fixed interval between calls."""

    def __init__(self, delay_seconds: float):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self.delay_seconds = delay_seconds

    async def wait(self) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)


class NoopRateLimiter(RateLimiter):
    """Never waits."""

    async def wait(self) -> None:
        return None
