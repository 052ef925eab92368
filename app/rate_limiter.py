"""
Redis rate limiting for the polling endpoints.

Fixed-window counter per user (INCR + EXPIRE). Reconciliation is safe to
repeat, so a Redis outage lets requests through (fail-open) instead of
blocking payment confirmation.
"""

import logging
from typing import Optional

import redis
from fastapi import Depends, HTTPException, Request

from . import config
from .auth import get_current_user
from .models import User

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


def _mask_url(redis_url: str) -> str:
    if "@" not in redis_url:
        return "****"
    url_parts = redis_url.split("@")
    protocol = url_parts[0].split(":")[0]
    return f"{protocol}:****@{url_parts[1]}"


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client (REDIS_URL preferred, else host/port settings)"""
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for rate limiting...")
        if config.REDIS_URL:
            logger.info(f"📡 Using Redis URL connection: {_mask_url(config.REDIS_URL)}")
            client = redis.from_url(
                config.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            logger.info(f"📡 Using Redis at {config.REDIS_HOST}:{config.REDIS_PORT} (db {config.REDIS_DB})")
            client = redis.Redis(
                host=config.REDIS_HOST,
                port=config.REDIS_PORT,
                password=config.REDIS_PASSWORD,
                db=config.REDIS_DB,
                ssl=config.REDIS_SSL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        client.ping()
        logger.info("Redis connected successfully")
        redis_client = client

    return redis_client


def check_rate_limit(key: str, limit: int, window_seconds: int, client: redis.Redis) -> tuple[bool, int, int]:
    """
    Count one request against ``key``.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl is None or ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds
    return count <= limit, count, ttl


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a per-user rate limiter dependency

    Example usage:
        sync_rate_limit = create_rate_limiter(limit=120, window_seconds=60, key_prefix="sync_payment")

        @router.post("/appointments/{appointment_id}/sync-payment")
        async def sync_payment(..., _: None = Depends(sync_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request, user: User = Depends(get_current_user)):
        if not config.RATE_LIMIT_ENABLED:
            return

        key = f"{key_prefix}:{user.id}"
        try:
            client = get_redis_client()
            is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)
        except redis.RedisError as e:
            logger.warning(f"⚠️ Rate limiting unavailable, allowing request (fail-open): {e}")
            return

        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                    "limit": limit,
                    "window_seconds": window_seconds,
                },
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_remaining = limit - current_count
        request.state.rate_limit_limit = limit

    return rate_limiter
