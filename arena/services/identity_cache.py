"""
Token to username resolution with a Redis-backed cache.

Carries no financial semantics: it only tells the caller which game-service
account owns a bearer token.
"""

import hashlib
from typing import Optional

import redis.asyncio as redis

from arena.config import Config
from arena.services.game_client import GameServiceClient
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class IdentityCache:
    """Redis cache of bearer token -> username."""

    KEY_PREFIX = "arena:identity:"

    def __init__(self, client: redis.Redis, ttl: Optional[int] = None):
        self.client = client
        self.ttl = ttl if ttl is not None else Config.IDENTITY_CACHE_TTL

    def _key(self, token: str) -> str:
        # Tokens are never stored in clear
        return self.KEY_PREFIX + hashlib.sha256(token.encode("utf-8")).hexdigest()

    async def lookup(self, token: str) -> Optional[str]:
        value = await self.client.get(self._key(token))
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def insert(self, token: str, username: str):
        await self.client.set(self._key(token), username, ex=self.ttl)


class IdentityResolver:
    """Resolves bearer tokens to usernames, asking the game service on a cache miss."""

    def __init__(self, cache: IdentityCache, game_client: GameServiceClient):
        self.cache = cache
        self.game_client = game_client

    async def resolve(self, token: str) -> str:
        username = await self.cache.lookup(token)
        if username is not None:
            return username

        logger.debug("Identity cache miss")
        account = await self.game_client.get_account(token)
        await self.cache.insert(token, account.username)
        return account.username
