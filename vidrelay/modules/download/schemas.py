"""Request-scoped shapes passed between the validator and the relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DownloadRequest:
    """Inbound client call, taken verbatim from the ``url`` query parameter."""

    raw_url: str


@dataclass(frozen=True)
class ValidatedURL:
    """URL that passed validation, kept parsed so the relay never re-parses it."""

    url: str
    scheme: str
    host: str
    path: str


@dataclass(frozen=True)
class ProbeResult:
    """Metadata read from the origin without transferring the body."""

    status_ok: bool
    content_type: str
    content_length: Optional[int]


@dataclass(frozen=True)
class StreamOutcome:
    bytes_sent: int
    completed: bool
    error: Optional[str] = None
