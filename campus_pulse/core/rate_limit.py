"""
rate_limit.py — Global HTTP rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

Usage in routes:
    @router.get("")
    @limiter.limit("30/minute")
    async def my_endpoint(request: Request, ...):
        ...

This throttles callers of the HTTP surface. The once-per-interval guard on
AI enrichment runs lives in services/snapshot_store.py (EnrichmentRateGuard).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

HOTSPOTS_LIMIT = "30/minute"
GEOCODE_LIMIT = "60/minute"
ALERTS_LIMIT = "20/minute"

limiter = Limiter(key_func=get_remote_address)
