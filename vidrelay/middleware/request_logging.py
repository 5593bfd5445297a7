import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


logger = logging.getLogger("vidrelay.middleware.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request once the response headers are ready.

    Bodies are never read here: download responses are streamed and must
    not be buffered.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start_time = time.perf_counter()
        client = request.client.host if request.client else "-"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "%s %s client=%s query=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            client,
            dict(request.query_params),
            response.status_code,
            duration_ms,
        )
        return response
