"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Only the manual refresh endpoint
opts in: every call runs a full aggregation cycle against all sources.

Usage in routes:
    @router.post("/refresh")
    @limiter.limit("6/minute")
    async def refresh(request: Request):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
