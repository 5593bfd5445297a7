"""Validate a remote video URL, probe it, then relay its bytes to the client."""

from .errors import DownloadError
from .schemas import DownloadRequest, ProbeResult, StreamOutcome, ValidatedURL
from .service import StreamSession, check_policy, derive_filename, open_stream, prepare_download, probe, stream
from .validator import validate

__all__ = [
    "DownloadError",
    "DownloadRequest",
    "ProbeResult",
    "StreamOutcome",
    "StreamSession",
    "ValidatedURL",
    "check_policy",
    "derive_filename",
    "open_stream",
    "prepare_download",
    "probe",
    "stream",
    "validate",
]
