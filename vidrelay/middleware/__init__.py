"""Middleware package for FastAPI application."""

from .rate_limit import RateLimitMiddleware
from .request_logging import RequestLoggingMiddleware

__all__ = ["RateLimitMiddleware", "RequestLoggingMiddleware"]
