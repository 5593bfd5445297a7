import asyncio
import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Per-client rate limiter over a sliding time window."""

    def __init__(self, max_requests: int = 100, window_seconds: float = 900.0):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per client within the window
            window_seconds: Length of the sliding window in seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.request_times: Dict[str, Deque[float]] = {}
        self.lock = asyncio.Lock()

    async def hit(self, key: str, now: Optional[float] = None) -> Optional[float]:
        """
        Record a request for ``key``.

        Returns:
            None if the request is allowed, otherwise the seconds until the
            client may try again.
        """
        async with self.lock:
            now = time.monotonic() if now is None else now
            times = self.request_times.setdefault(key, deque())

            # Drop requests that fell out of the window
            while times and now - times[0] >= self.window_seconds:
                times.popleft()

            if len(times) < self.max_requests:
                times.append(now)
                logger.debug(f"Rate limiter: {key} {len(times)}/{self.max_requests} requests used")
                return None

            retry_after = self.window_seconds - (now - times[0])
            logger.info(
                f"⏳ Rate limit: {key} used {self.max_requests} requests. "
                f"Retry in {retry_after:.1f}s"
            )
            return retry_after

    async def prune(self, now: Optional[float] = None) -> None:
        """Forget clients whose requests all fell out of the window."""
        async with self.lock:
            now = time.monotonic() if now is None else now
            stale = [
                key for key, times in self.request_times.items()
                if not times or now - times[-1] >= self.window_seconds
            ]
            for key in stale:
                del self.request_times[key]

    def reset(self):
        """Reset the rate limiter."""
        self.request_times.clear()
        logger.info("Rate limiter reset")
