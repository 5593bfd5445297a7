"""
URL validation for the download relay.

Runs before any network call and rejects fast:
- Absolute URL with a host
- Scheme allow-list (HTTP/HTTPS)
- File extension allow-list on the final path segment

The extension check is a cheap filter, not a security boundary; the
content-type check during the probe is the real gate.
"""

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from vidrelay.core.config import settings

from .errors import ExtensionNotAllowed, MalformedURL, MissingURL, SchemeNotAllowed
from .schemas import ValidatedURL

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate(
    raw_url: Optional[str],
    allowed_schemes: Optional[Iterable[str]] = None,
    allowed_extensions: Optional[Iterable[str]] = None,
) -> ValidatedURL:
    """
    Validate a client-supplied URL against the download policy.

    Args:
        raw_url: URL taken verbatim from the query string (already percent-decoded)
        allowed_schemes: Override for the configured scheme allow-list
        allowed_extensions: Override for the configured extension allow-list

    Returns:
        ValidatedURL carrying the parsed scheme, host and path

    Raises:
        MissingURL: If the input is empty
        MalformedURL: If the input is not an absolute URL with a host
        SchemeNotAllowed: If the scheme is not allow-listed
        ExtensionNotAllowed: If the last path segment has no allow-listed extension
    """
    schemes = {s.lower() for s in (allowed_schemes or settings.allowed_schemes)}
    extensions = tuple(e.lower() for e in (allowed_extensions or settings.allowed_extensions))

    if raw_url is None or not raw_url.strip():
        raise MissingURL()

    candidate = raw_url.strip()
    if _CONTROL_CHARS.search(candidate):
        raise MalformedURL("URL contains control characters")

    try:
        parts = urlsplit(candidate)
        # Accessing the port validates it
        parts.port
    except ValueError as exc:
        raise MalformedURL(f"Malformed URL: {exc}") from exc

    if not parts.scheme:
        raise MalformedURL("URL must be absolute (e.g. https://example.com/clip.mp4)")

    scheme = parts.scheme.lower()
    if scheme not in schemes:
        raise SchemeNotAllowed(f"Scheme '{scheme}' is not allowed. Only {', '.join(sorted(schemes))} URLs are accepted.")

    if not parts.hostname:
        raise MalformedURL("URL is missing a hostname")

    last_segment = parts.path.rsplit("/", 1)[-1].lower()
    if not last_segment.endswith(extensions):
        raise ExtensionNotAllowed(
            f"Only direct links to {', '.join(extensions)} files are supported"
        )

    logger.debug("URL validated: %s://%s%s", scheme, parts.hostname, parts.path)
    return ValidatedURL(
        url=candidate,
        scheme=scheme,
        host=parts.hostname,
        path=parts.path,
    )
