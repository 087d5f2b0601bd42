"""
Redis Configuration

Async Redis client shared by rate limiting and the cooperative stop flags
consulted by long-running batch jobs.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)

JOB_STOP_KEY_PREFIX = "jobs:stop:"
JOB_STOP_TTL_SECONDS = 60 * 60 * 6

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection.

    Call this on application startup.
    """
    global redis_client
    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await redis_client.ping()
    return redis_client


async def get_redis() -> Redis | None:
    """Get Redis client instance, or None if Redis is not available."""
    return redis_client


def is_redis_available() -> bool:
    """Check if Redis client is initialized and available."""
    return redis_client is not None


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


# ============================================
# Cooperative job stop flags
# ============================================


async def request_job_stop(job_id: str) -> bool:
    """
    Ask a running batch job to stop before its next batch.

    Returns:
        True if the flag was stored, False if Redis is unavailable
    """
    if redis_client is None:
        logger.warning(f"Cannot request stop for job {job_id}: Redis not initialized")
        return False

    try:
        await redis_client.set(f"{JOB_STOP_KEY_PREFIX}{job_id}", "1", ex=JOB_STOP_TTL_SECONDS)
    except RedisError as e:
        logger.error(f"Failed to store stop flag for job {job_id}: {e}", exc_info=True)
        return False

    logger.info(f"Stop requested for job: {job_id}")
    return True


async def is_job_stop_requested(job_id: str) -> bool:
    """Return True if a stop was requested. An unreachable Redis reads as False."""
    if redis_client is None:
        return False

    try:
        return bool(await redis_client.exists(f"{JOB_STOP_KEY_PREFIX}{job_id}"))
    except RedisError as e:
        logger.warning(f"Could not read stop flag for job {job_id}: {e}")
        return False


async def clear_job_stop(job_id: str) -> None:
    """Remove a stop flag once the job has acknowledged it."""
    if redis_client is None:
        return

    try:
        await redis_client.delete(f"{JOB_STOP_KEY_PREFIX}{job_id}")
    except RedisError as e:
        logger.warning(f"Could not clear stop flag for job {job_id}: {e}")
