import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional
from urllib.parse import unquote

import aiohttp

from vidrelay.core.config import settings

from .errors import (
    ClientDisconnected,
    NotAVideo,
    RemoteTooLarge,
    StreamInterrupted,
    StreamTruncated,
    UpstreamFetchFailed,
    UpstreamProbeFailed,
)
from .schemas import DownloadRequest, ProbeResult, StreamOutcome, ValidatedURL
from .validator import validate

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FALLBACK_FILENAME = "video"
MAX_FILENAME_LENGTH = 255

_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")

Sink = Callable[[bytes], Awaitable[None]]


def derive_filename(path: str) -> str:
    """Attachment filename from the last path segment, safe to put in a header."""
    segment = unquote(path.rsplit("/", 1)[-1])
    # Decoded %2F / %5C must not smuggle directories in
    segment = segment.replace("\\", "/").rsplit("/", 1)[-1]
    segment = _FILENAME_UNSAFE.sub("_", segment).lstrip(".")
    segment = segment[-MAX_FILENAME_LENGTH:]
    return segment or FALLBACK_FILENAME


def _parse_content_length(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        logger.debug("Ignoring unparseable Content-Length %r", raw)
        return None
    return value if value >= 0 else None


def _upstream_headers() -> Dict[str, str]:
    return {
        "User-Agent": settings.UPSTREAM_USER_AGENT,
        "Accept": "video/*,*/*;q=0.8",
        # Bytes are relayed as received, so the origin must not compress them
        "Accept-Encoding": "identity",
    }


def _is_success(status: int) -> bool:
    return 200 <= status < 300


async def probe(http: aiohttp.ClientSession, target: ValidatedURL) -> ProbeResult:
    """
    Read the declared content type and length of the remote file with a HEAD request.

    Raises:
        UpstreamProbeFailed: On transport errors, timeouts or a non-2xx answer
    """
    timeout = aiohttp.ClientTimeout(total=settings.PROBE_TIMEOUT_SECONDS)
    try:
        response = await http.head(
            target.url,
            headers=_upstream_headers(),
            allow_redirects=True,
            timeout=timeout,
        )
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning("Probe failed for %s: %s", target.url, exc)
        raise UpstreamProbeFailed() from exc

    try:
        if not _is_success(response.status):
            logger.warning("Probe for %s answered HTTP %s", target.url, response.status)
            raise UpstreamProbeFailed(f"Remote server answered HTTP {response.status}")

        result = ProbeResult(
            status_ok=True,
            content_type=(response.headers.get("Content-Type") or "").strip(),
            content_length=_parse_content_length(response.headers.get("Content-Length")),
        )
    finally:
        response.release()

    logger.info(
        "Probe ok for %s: type=%r length=%s",
        target.url,
        result.content_type,
        result.content_length,
    )
    return result


def check_policy(result: ProbeResult, max_bytes: Optional[int] = None) -> None:
    """
    Apply the content-type and declared-size policy to a probe result.

    A missing length is tolerated; the running counter in the stream phase
    still enforces the ceiling.
    """
    limit = max_bytes if max_bytes is not None else settings.MAX_DOWNLOAD_BYTES

    if not result.content_type.lower().startswith("video/"):
        raise NotAVideo(f"Remote file is not a video (content type: {result.content_type or 'none'})")

    if result.content_length is not None and result.content_length > limit:
        raise RemoteTooLarge(
            f"Remote file ({result.content_length / 1024 / 1024:.1f}MB) exceeds "
            f"the {limit / 1024 / 1024:.0f}MB limit"
        )


@dataclass
class StreamSession:
    """Open upstream response piped to one client."""

    url: str
    response: aiohttp.ClientResponse
    filename: str
    content_type: str
    content_length: Optional[int]
    max_bytes: int
    chunk_size: int
    bytes_sent: int = 0
    _closed: bool = field(default=False, repr=False)

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Disposition": f'attachment; filename="{self.filename}"'}
        if self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)
        return headers

    async def iter_body(self) -> AsyncIterator[bytes]:
        """
        Yield the upstream body in bounded chunks.

        Raises:
            StreamTruncated: If the body grows past ``max_bytes``
            StreamInterrupted: If reading from the origin fails mid-transfer
        """
        completed = False
        try:
            async for chunk in self.response.content.iter_chunked(self.chunk_size):
                if not chunk:
                    continue
                if self.bytes_sent + len(chunk) > self.max_bytes:
                    logger.warning(
                        "Aborting %s: transfer passed the %d byte limit after %d bytes",
                        self.url,
                        self.max_bytes,
                        self.bytes_sent,
                    )
                    raise StreamTruncated()
                self.bytes_sent += len(chunk)
                yield chunk
            completed = True
            logger.info("Streamed %d bytes from %s", self.bytes_sent, self.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Upstream read failed for %s after %d bytes: %s",
                self.url,
                self.bytes_sent,
                exc,
            )
            raise StreamInterrupted("Upstream read failed") from exc
        except asyncio.CancelledError:
            logger.warning("Client disconnected from %s after %d bytes", self.url, self.bytes_sent)
            raise
        finally:
            self.close(completed=completed)

    async def stream_to(self, sink: Sink) -> StreamOutcome:
        """Pipe the body into ``sink``; failures after the first byte end the transfer early."""
        written = 0
        body = self.iter_body()
        try:
            async for chunk in body:
                try:
                    await sink(chunk)
                except OSError as exc:
                    logger.warning(
                        "Client write failed for %s after %d bytes: %s",
                        self.url,
                        written,
                        exc,
                    )
                    raise ClientDisconnected() from exc
                written += len(chunk)
            return StreamOutcome(bytes_sent=written, completed=True)
        except StreamInterrupted as exc:
            return StreamOutcome(bytes_sent=written, completed=False, error=exc.kind)
        finally:
            await body.aclose()
            self.close()

    def close(self, completed: bool = False) -> None:
        """Return the connection to the pool after a full read, drop it otherwise."""
        if self._closed:
            return
        self._closed = True
        if completed:
            self.response.release()
        else:
            self.response.close()
            logger.debug("Closed upstream connection for %s", self.url)


async def open_stream(
    http: aiohttp.ClientSession,
    target: ValidatedURL,
    probe_result: ProbeResult,
    max_bytes: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> StreamSession:
    """
    Issue the full GET and hand back a session ready to be piped.

    Raises:
        UpstreamFetchFailed: On transport errors, timeouts or a non-2xx answer
        RemoteTooLarge: If the GET declares a length over the ceiling
    """
    limit = max_bytes if max_bytes is not None else settings.MAX_DOWNLOAD_BYTES
    timeout = aiohttp.ClientTimeout(
        total=settings.STREAM_TOTAL_TIMEOUT_SECONDS or None,
        connect=settings.STREAM_CONNECT_TIMEOUT_SECONDS,
        sock_read=settings.STREAM_READ_TIMEOUT_SECONDS,
    )
    try:
        response = await http.get(
            target.url,
            headers=_upstream_headers(),
            allow_redirects=True,
            timeout=timeout,
        )
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning("Fetch failed for %s: %s", target.url, exc)
        raise UpstreamFetchFailed() from exc

    if not _is_success(response.status):
        response.close()
        logger.warning("Fetch for %s answered HTTP %s", target.url, response.status)
        raise UpstreamFetchFailed(f"Remote server answered HTTP {response.status}")

    content_length = _parse_content_length(response.headers.get("Content-Length"))
    if content_length is not None and content_length > limit:
        response.close()
        logger.warning("Fetch for %s declared %d bytes, over the %d byte limit", target.url, content_length, limit)
        raise RemoteTooLarge()
    if content_length is None and probe_result.content_length is not None:
        logger.debug("GET for %s dropped the declared length", target.url)

    return StreamSession(
        url=target.url,
        response=response,
        filename=derive_filename(target.path),
        content_type=(response.headers.get("Content-Type") or "").strip() or DEFAULT_CONTENT_TYPE,
        content_length=content_length,
        max_bytes=limit,
        chunk_size=chunk_size or settings.STREAM_CHUNK_SIZE,
    )


async def stream(
    http: aiohttp.ClientSession,
    target: ValidatedURL,
    probe_result: ProbeResult,
    sink: Sink,
    on_headers: Optional[Callable[[str, Dict[str, str]], Awaitable[None]]] = None,
) -> StreamOutcome:
    """Fetch ``target`` and pipe it into ``sink``, announcing headers first."""
    session = await open_stream(http, target, probe_result)
    if on_headers is not None:
        try:
            await on_headers(session.content_type, session.headers)
        except BaseException:
            session.close()
            raise
    return await session.stream_to(sink)


async def prepare_download(http: aiohttp.ClientSession, request: DownloadRequest) -> StreamSession:
    """Validate, probe and open the upstream stream for one client request."""
    target = validate(request.raw_url)
    probe_result = await probe(http, target)
    check_policy(probe_result)
    return await open_stream(http, target, probe_result)
