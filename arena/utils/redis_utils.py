"""
Redis connection helpers for the identity cache.

The cache is optional: when no acceptable URL is configured, or the server
does not answer, callers get None and resolve identities remotely.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from arena.config import Config

logger = logging.getLogger(__name__)

LOCAL_REDIS_URL = 'redis://localhost:6379'


class RedisUtils:
    """Redis URL selection and client creation."""

    @staticmethod
    def resolve_redis_url() -> Optional[str]:
        """Pick the Redis URL to use, or None if the cache should stay off."""
        if Config.REDIS_URL:
            if not RedisUtils.is_acceptable_url(Config.REDIS_URL):
                logger.error("REDIS_URL rejected; identity cache disabled")
                return None
            return Config.REDIS_URL

        if Config.DEBUG:
            logger.warning(f"REDIS_URL not set, falling back to {LOCAL_REDIS_URL} in debug mode")
            return LOCAL_REDIS_URL

        logger.info("REDIS_URL not set; identity cache disabled")
        return None

    @staticmethod
    def is_acceptable_url(redis_url: str) -> bool:
        """Outside debug mode only authenticated rediss:// URLs are accepted."""
        if Config.DEBUG:
            if not redis_url.startswith(('redis://localhost', 'redis://127.0.0.1', 'rediss://')):
                logger.warning(f"Using non-local plaintext Redis in debug mode: {redis_url}")
            return True

        if not redis_url.startswith('rediss://'):
            logger.error("Redis must use TLS (rediss://) outside debug mode")
            return False
        if '@' not in redis_url:
            logger.error("Redis URL must carry credentials outside debug mode")
            return False
        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Connect and ping; returns None when the cache is unavailable."""
        redis_url = RedisUtils.resolve_redis_url()
        if redis_url is None:
            return None

        client = redis.from_url(redis_url, decode_responses=True)
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.error(f"Redis did not answer ping: {e}")
            await client.aclose()
            return None

        logger.info("Connected to Redis for the identity cache")
        return client
