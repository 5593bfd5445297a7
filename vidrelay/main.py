import logging
from pathlib import Path

# FastAPI imports
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

# API imports
from vidrelay.api import api_router

# Core imports
from vidrelay.core.config import settings
from vidrelay.core.lifespan import lifespan
from vidrelay.core.middleware import SecurityHeadersMiddleware

# Middleware imports
from vidrelay.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from vidrelay.modules.download.errors import DownloadError, StreamInterrupted
from vidrelay.services.rate_limiter import SlidingWindowRateLimiter

# Logging configuration
logger = logging.getLogger(__name__)


async def download_error_handler(request: Request, exc: DownloadError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    # Already logged where it happened; headers are out, so nothing gets sent
    if not isinstance(exc, StreamInterrupted):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return PlainTextResponse("Internal server error", status_code=500)


def create_application() -> FastAPI:
    application = FastAPI(
        title="vidrelay",
        description="Validates a remote video URL and relays the file as a download",
        version="1.0.0",
        lifespan=lifespan
    )

    application.add_exception_handler(DownloadError, download_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    # Last added runs outermost; logging sees rate-limited and hardened responses
    application.add_middleware(
        RateLimitMiddleware,
        limiter=SlidingWindowRateLimiter(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        ),
        path_prefix=settings.API_PREFIX,
    )
    if settings.SECURITY_HEADERS_ENABLED:
        application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router, prefix=settings.API_PREFIX)

    @application.get("/health")
    async def health_check():
        return {"status": "healthy"}

    static_dir = Path(settings.STATIC_DIR) if settings.STATIC_DIR else None
    if static_dir is not None and static_dir.is_dir():
        logger.info("Serving UI from %s", static_dir)
        application.mount("/", StaticFiles(directory=static_dir, html=True), name="ui")
    else:
        @application.get("/", tags=["App"], summary="App Version")
        async def root():
            return {
                "message": "vidrelay is running!",
                "version": application.version,
            }

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("vidrelay.main:app", host=settings.HOST, port=settings.PORT)
