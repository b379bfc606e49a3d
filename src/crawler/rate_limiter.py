"""Rate limiter for outbound scan work."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from .cancel import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Concurrency cap plus minimum spacing between task starts.

    At most ``max_concurrent`` scheduled tasks run at once, and two task
    starts are never closer than ``min_time`` seconds. One instance is meant
    to be shared by every crawl in the process; the asyncio primitives are
    created lazily so the limiter can be built outside a running loop.
    """

    def __init__(self, max_concurrent: int = 2, min_time: float = 0.5):
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum tasks in flight (0 = unlimited)
            min_time: Minimum seconds between task starts (0 = no spacing)
        """
        self.max_concurrent = max_concurrent
        self.min_time = max(0.0, min_time)
        self._last_start_time: float = 0
        self._lock: Optional[asyncio.Lock] = None  # Lazy initialization
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._running = 0
        self._started = 0
        self._failed = 0

    def _primitives(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        if self._semaphore is None and self.max_concurrent > 0:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._lock, self._semaphore

    async def acquire(self) -> None:
        """Wait until the next task start respects the minimum spacing."""
        if self.min_time <= 0:
            self._last_start_time = time.monotonic()
            return

        lock, _ = self._primitives()
        async with lock:
            time_since_last = time.monotonic() - self._last_start_time
            if time_since_last < self.min_time:
                wait = self.min_time - time_since_last
                logger.debug("rate limiter spacing: waiting %.3fs", wait)
                await asyncio.sleep(wait)
            self._last_start_time = time.monotonic()

    async def schedule(
        self,
        task: Callable[[], Awaitable[T]],
        cancel_token: Optional[CancelToken] = None,
    ) -> T:
        """Run ``task()`` once a slot is free and the spacing allows it.

        The task's exception, if any, propagates to the caller. The slot is
        released on every exit path.

        Raises:
            CrawlCancelledError: If ``cancel_token`` was cancelled while waiting
        """
        _, semaphore = self._primitives()
        if semaphore is None:
            return await self._run(task, cancel_token)
        async with semaphore:
            return await self._run(task, cancel_token)

    async def _run(self, task: Callable[[], Awaitable[T]], cancel_token: Optional[CancelToken]) -> T:
        await self.acquire()
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        self._running += 1
        self._started += 1
        try:
            return await task()
        except BaseException:
            self._failed += 1
            raise
        finally:
            self._running -= 1

    @property
    def running(self) -> int:
        return self._running

    def reset(self) -> None:
        """Reset the spacing state."""
        self._last_start_time = 0

    def stats(self) -> dict:
        """Get rate limiter statistics."""
        return {
            "max_concurrent": self.max_concurrent,
            "min_time": self.min_time,
            "running": self._running,
            "started": self._started,
            "failed": self._failed,
        }
