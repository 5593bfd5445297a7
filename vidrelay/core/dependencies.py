"""Reusable dependency providers for FastAPI routes."""

import aiohttp
from fastapi import Request


def get_http_session(request: Request) -> aiohttp.ClientSession:
    """FastAPI dependency that returns the shared upstream client session."""
    session = getattr(request.app.state, "http_session", None)
    if session is None:
        raise RuntimeError("HTTP client session is not initialised; is the lifespan running?")
    return session
