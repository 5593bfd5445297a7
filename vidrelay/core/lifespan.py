import logging
from contextlib import asynccontextmanager

import aiohttp
from fastapi import FastAPI

from vidrelay.core.config import settings

# Configure logger
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_http_session() -> aiohttp.ClientSession:
    """Shared upstream client; bodies are relayed as received, never decoded."""
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=None, connect=settings.STREAM_CONNECT_TIMEOUT_SECONDS),
        auto_decompress=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🔌 Opening upstream HTTP client session...")
    app.state.http_session = create_http_session()

    yield

    # Shutdown
    logger.info("🛑 Closing upstream HTTP client session...")
    await app.state.http_session.close()
