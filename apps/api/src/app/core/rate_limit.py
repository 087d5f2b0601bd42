"""
Rate Limiting Module

Fixed-window rate limiting for public endpoints, backed by the shared Redis
client. Falls back to an in-process window when Redis is unavailable.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, status
from redis.exceptions import RedisError

from app.core import redis as redis_module

logger = logging.getLogger(__name__)

# Fallback storage: {key: (expires_at, count)}
_memory_store: dict[str, tuple[float, int]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


def _check_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()

    # Remove expired windows
    for stale in [k for k, (expires_at, _) in _memory_store.items() if expires_at <= now]:
        del _memory_store[stale]

    expires_at, count = _memory_store.get(key, (now + window_seconds, 0))
    if count >= limit:
        return False

    _memory_store[key] = (expires_at, count + 1)
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Count a request against ``key``.

    Returns:
        True if the request is allowed, False if the limit is exhausted
    """
    client = redis_module.redis_client
    if client is not None:
        try:
            current = await client.incr(f"rate_limit:{key}")
            if current == 1:
                await client.expire(f"rate_limit:{key}", window_seconds)
            return current <= limit
        except RedisError as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_memory(key, limit, window_seconds)


def rate_limit(limit: int = 10, window_seconds: int = 60) -> Callable[[Request], Awaitable[None]]:
    """
    Build a FastAPI dependency limiting requests per client IP and path.

    Usage:
        @router.post("", dependencies=[Depends(rate_limit(limit=5, window_seconds=3600))])
    """

    async def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        key = f"{client_ip}:{request.url.path}"

        if not await check_rate_limit(key, limit, window_seconds):
            logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
            raise RateLimitExceeded(limit, window_seconds)

    return dependency


__all__ = [
    "rate_limit",
    "check_rate_limit",
    "RateLimitExceeded",
]
