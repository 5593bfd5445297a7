import logging
import math

from fastapi import Request
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vidrelay.services.rate_limiter import SlidingWindowRateLimiter


logger = logging.getLogger("vidrelay.middleware.rate_limit")

# Prune idle clients every N requests
PRUNE_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceed the request budget before the route runs."""

    def __init__(self, app, limiter: SlidingWindowRateLimiter, path_prefix: str = "/"):
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix
        self._seen = 0

    def _in_scope(self, path: str) -> bool:
        # "/api" covers "/api" and "/api/..." but not "/apiary"
        prefix = self.path_prefix.rstrip("/")
        return not prefix or path == prefix or path.startswith(prefix + "/")

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if not self._in_scope(request.url.path):
            return await call_next(request)

        client_key = request.client.host if request.client else "unknown"
        retry_after = await self.limiter.hit(client_key)

        self._seen += 1
        if self._seen % PRUNE_EVERY == 0:
            await self.limiter.prune()

        if retry_after is not None:
            logger.warning("Rate limit exceeded for %s on %s", client_key, request.url.path)
            return PlainTextResponse(
                "Too many requests, please try again later.",
                status_code=429,
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )

        return await call_next(request)
