"""
Common API dependencies: service lookup, admin authentication and rate limiting.
"""

import logging
import math
import time
from typing import Callable

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from catalog_search.config import config

logger = logging.getLogger(__name__)

# Admin API key security
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_search_service(request: Request):
    return request.app.state.search_service


def get_indexing_service(request: Request):
    return request.app.state.indexing_service


def get_system_service(request: Request):
    return request.app.state.system_service


async def require_admin(api_key: str = Security(api_key_header)) -> str:
    """
    Verify the X-API-Key header against ADMIN_API_KEY.
    Admin routes stay closed while no key is configured.
    """
    if not config.ADMIN_API_KEY:
        raise HTTPException(
            status_code=503,
            detail="Admin API key not configured. Set ADMIN_API_KEY.",
        )

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key != config.ADMIN_API_KEY:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return api_key


class RateLimiter:
    """
    Token bucket per client key.

    Each key starts with `capacity` tokens and regains `refill_per_second`
    tokens per second up to capacity. A capacity of 0 disables limiting.
    """

    # Buckets are pruned once this many keys are tracked
    MAX_TRACKED_KEYS = 10000

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}

    @property
    def enabled(self) -> bool:
        return self.capacity > 0

    def _prune(self, now: float) -> None:
        # Drop buckets that have refilled completely; they carry no state
        if self.refill_per_second <= 0:
            self._buckets.clear()
            return
        full_after = self.capacity / self.refill_per_second
        self._buckets = {
            key: (tokens, updated)
            for key, (tokens, updated) in self._buckets.items()
            if now - updated < full_after
        }

    def acquire(self, key: str) -> float:
        """
        Take one token for `key`.

        Returns:
            0.0 if allowed, otherwise seconds until the next token.
        """
        if not self.enabled:
            return 0.0

        now = self._clock()
        tokens, updated = self._buckets.get(key, (float(self.capacity), now))
        tokens = min(float(self.capacity), tokens + (now - updated) * self.refill_per_second)

        if tokens >= 1.0:
            self._buckets[key] = (tokens - 1.0, now)
            if len(self._buckets) > self.MAX_TRACKED_KEYS:
                self._prune(now)
            return 0.0

        self._buckets[key] = (tokens, now)
        if self.refill_per_second <= 0:
            return math.inf
        return (1.0 - tokens) / self.refill_per_second


async def rate_limit(request: Request) -> None:
    """Reject the request with 429 when the client's bucket is empty."""
    limiter: RateLimiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or not limiter.enabled:
        return

    client = request.client.host if request.client else "unknown"
    wait = limiter.acquire(client)
    if wait > 0:
        logger.debug(f"Rate limit exceeded for {client}")
        retry_after = "60" if math.isinf(wait) else str(max(1, math.ceil(wait)))
        raise HTTPException(
            status_code=429,
            detail="Too many requests",
            headers={"Retry-After": retry_after},
        )
