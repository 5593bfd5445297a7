import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
from multidict import CIMultiDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


class FakeContent:
    """Stands in for ``aiohttp.StreamReader``."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        error: Optional[BaseException] = None,
        stall_after: Optional[int] = None,
    ):
        self._chunks = chunks
        self._error = error
        self._stall_after = stall_after
        self.yielded = 0

    async def iter_chunked(self, n: int):
        for chunk in self._chunks:
            if self._stall_after is not None and self.yielded >= self._stall_after:
                await asyncio.Event().wait()
            self.yielded += 1
            yield chunk
        if self._error is not None:
            raise self._error


class FakeResponse:
    """Stands in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunks: Iterable[bytes] = (),
        error: Optional[BaseException] = None,
        stall_after: Optional[int] = None,
    ):
        self.status = status
        self.headers = CIMultiDict(headers or {})
        self.content = FakeContent(chunks, error=error, stall_after=stall_after)
        self.released = False
        self.closed = False

    def release(self) -> None:
        self.released = True

    def close(self) -> None:
        self.closed = True


class _FakeCall:
    def __init__(self, response: Optional[FakeResponse], error: Optional[BaseException]):
        self._response = response
        self._error = error

    def __await__(self):
        return self._resolve().__await__()

    async def _resolve(self) -> FakeResponse:
        if self._error is not None:
            raise self._error
        assert self._response is not None, "no fake response configured"
        return self._response


class FakeHTTPSession:
    """Stands in for ``aiohttp.ClientSession`` and records every call."""

    def __init__(
        self,
        head: Optional[FakeResponse] = None,
        get: Optional[FakeResponse] = None,
        head_error: Optional[BaseException] = None,
        get_error: Optional[BaseException] = None,
    ):
        self.head_response = head
        self.get_response = get
        self.head_error = head_error
        self.get_error = get_error
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def head(self, url: str, **kwargs: Any) -> _FakeCall:
        self.calls.append(("HEAD", url, kwargs))
        return _FakeCall(self.head_response, self.head_error)

    def get(self, url: str, **kwargs: Any) -> _FakeCall:
        self.calls.append(("GET", url, kwargs))
        return _FakeCall(self.get_response, self.get_error)

    @property
    def methods(self) -> List[str]:
        return [method for method, _, _ in self.calls]


def video_session(body: bytes = b"x" * 1000, content_type: str = "video/mp4") -> FakeHTTPSession:
    """Origin that answers both the probe and the fetch for a small video."""
    length = str(len(body))
    return FakeHTTPSession(
        head=FakeResponse(headers={"Content-Type": content_type, "Content-Length": length}),
        get=FakeResponse(
            headers={"Content-Type": content_type, "Content-Length": length},
            chunks=[body[i:i + 256] for i in range(0, len(body), 256)],
        ),
    )


@pytest.fixture
def run():
    return asyncio.run
