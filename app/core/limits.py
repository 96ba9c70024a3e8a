"""Shared rate limiter for the public intake endpoints."""

from __future__ import annotations

from fastapi import Request
from slowapi import Limiter

from .settings import get_settings


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer the first hop of ``X-Forwarded-For`` when present, otherwise use
    the socket peer address.
    """

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def submission_limit() -> str:
    return get_settings().submission_rate_limit


def lookup_limit() -> str:
    return get_settings().lookup_rate_limit


limiter = Limiter(key_func=get_client_ip)

__all__ = ["get_client_ip", "limiter", "lookup_limit", "submission_limit"]
