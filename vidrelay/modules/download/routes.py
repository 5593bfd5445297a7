import logging
from typing import Optional

import aiohttp
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from vidrelay.core.dependencies import get_http_session

from .errors import DownloadError, InternalFault
from .schemas import DownloadRequest
from .service import StreamSession, prepare_download


router = APIRouter()
logger = logging.getLogger(__name__)


class RelayStreamingResponse(StreamingResponse):
    """Streams a StreamSession and always lets go of the upstream connection."""

    def __init__(self, session: StreamSession):
        super().__init__(
            session.iter_body(),
            media_type=session.content_type,
            headers=session.headers,
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.session.close()


@router.get("/download", response_class=StreamingResponse, summary="Relay a remote video file as an attachment")
async def download_video(
    url: Optional[str] = Query(default=None, description="Direct URL of the video file"),
    http: aiohttp.ClientSession = Depends(get_http_session),
):
    try:
        session = await prepare_download(http, DownloadRequest(raw_url=url or ""))
    except DownloadError as exc:
        logger.info("Download rejected (%s) for url=%s: %s", exc.kind, url, exc.message)
        raise
    except Exception as exc:
        logger.exception("Unexpected failure preparing download for url=%s", url)
        raise InternalFault() from exc

    logger.info("Relaying %s as %s (%s)", session.url, session.filename, session.content_type)
    return RelayStreamingResponse(session)
