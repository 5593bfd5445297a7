"""Failure taxonomy for the download relay.

Every failure carries the HTTP status it maps to at the boundary and a
short human-readable message that is safe to return to the client.
"""

from typing import Optional


class DownloadError(Exception):
    """Base exception for relay failures."""

    status_code: int = 500
    default_message: str = "Download failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code

    @property
    def kind(self) -> str:
        return type(self).__name__


# Client input that fails validation; retrying the same request is pointless.
class InputRejected(DownloadError):
    status_code = 400
    default_message = "Invalid URL"


class MissingURL(InputRejected):
    default_message = "Missing url parameter"


class MalformedURL(InputRejected):
    default_message = "Malformed URL"


class SchemeNotAllowed(InputRejected):
    default_message = "Only http and https URLs are allowed"


class ExtensionNotAllowed(InputRejected):
    default_message = "URL does not point to a supported video file"


# Origin could not be reached or answered with an error; safe to retry.
class UpstreamUnavailable(DownloadError):
    status_code = 502
    default_message = "Upstream request failed"


class UpstreamProbeFailed(UpstreamUnavailable):
    default_message = "Could not read remote file metadata"


class UpstreamFetchFailed(UpstreamUnavailable):
    default_message = "Could not fetch remote file"


# Deterministic policy rejections.
class PolicyViolation(DownloadError):
    status_code = 400
    default_message = "Remote file rejected by policy"


class NotAVideo(PolicyViolation):
    default_message = "Remote file is not a video"


class RemoteTooLarge(PolicyViolation):
    status_code = 413
    default_message = "Remote file is too large"


# Raised after headers were sent, so it has no status code and is not a
# DownloadError: the status is committed and the connection is dropped instead.
class StreamInterrupted(Exception):
    default_message = "Stream interrupted"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def kind(self) -> str:
        return type(self).__name__


class StreamTruncated(StreamInterrupted):
    default_message = "Remote file exceeded the size limit during transfer"


class ClientDisconnected(StreamInterrupted):
    default_message = "Client disconnected"


class InternalFault(DownloadError):
    default_message = "Internal server error"
