"""Redis keyspace expiry: a ready-made invalidation collaborator.

RedisKeyspace deletes the physical keys of a KeyRegistry (and every key
nested under them) from Redis. Register it in the ServiceContainer and
point expire_cache at it:

    @expire_cache(service_type=RedisKeyspace)            # calls expire_all()
    @expire_cache(method_expression="@redis_keyspace.expire(key)")

Redis errors are logged and reported as 0 keys deleted, never raised.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

import redis.asyncio as redis

from cachekeeper.core.config import get_settings
from cachekeeper.core.constants import REDIS_UNLINK_CHUNK
from cachekeeper.infrastructure.cache.keys import KeyRegistry

logger = logging.getLogger(__name__)

_GLOB_SPECIAL_RE = re.compile(r"([*?\[\]\\])")


def escape_pattern(key: str) -> str:
    """Escape Redis glob metacharacters so key matches only itself in SCAN MATCH."""
    return _GLOB_SPECIAL_RE.sub(r"\\\1", key)


class RedisKeyspace:
    """Async expiry of registry keys in Redis.

    Uses app settings for connection values when no client is injected.
    Call connect() at startup and disconnect() at shutdown.
    """

    def __init__(
        self,
        registry: KeyRegistry,
        logical_keys: Iterable[str] | None = None,
        redis_client: redis.Redis | None = None,
    ) -> None:
        """Initialize the keyspace.

        Args:
            registry: Registry that maps logical keys to physical keys.
            logical_keys: Logical keys owned by this keyspace; None means all
                keys registered at expiry time.
            redis_client: Optional Redis client for testing or DI.
        """
        self.registry = registry
        self.logical_keys = tuple(logical_keys) if logical_keys is not None else None
        self.redis = redis_client
        self.settings = get_settings()
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish Redis connection. Call on startup."""
        if self.redis is not None:
            return
        try:
            self.redis = redis.Redis(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=self.settings.redis_password.get_secret_value()
                if self.settings.redis_password
                else None,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_keepalive=True,
            )
            await self.redis.ping()
            self._connected = True
            logger.info(
                "Redis keyspace connected: %s:%s",
                self.settings.redis_host,
                self.settings.redis_port,
            )
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("Redis connection failed: %s. Keyspace expiry disabled.", e)
            self._connected = False
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection. Call on shutdown."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Redis keyspace disconnected")

    def is_available(self) -> bool:
        """Return True if Redis is connected and usable."""
        return self._connected and self.redis is not None

    def physical_keys(self) -> list[str]:
        """Physical keys owned by this keyspace; unknown logical keys are skipped."""
        owned = self.logical_keys if self.logical_keys is not None else sorted(self.registry.get_keys())
        keys = []
        for logical_key in owned:
            entry = self.registry.get_entry(logical_key)
            if entry is None:
                logger.warning("Keyspace skips unregistered logical key %s", logical_key)
                continue
            keys.append(entry.physical_key)
        return keys

    async def expire(self, logical_key: str) -> int:
        """Delete the physical key of logical_key and every key nested under it.

        Returns:
            Number of keys deleted.

        Raises:
            UnknownKeyException: If logical_key is not registered.
        """
        physical_key = self.registry.get_key(logical_key)
        return await self._expire_physical([physical_key])

    async def expire_all(self) -> int:
        """Delete every owned physical key and the keys nested under them.

        Returns:
            Number of keys deleted.
        """
        return await self._expire_physical(self.physical_keys())

    async def _expire_physical(self, physical_keys: list[str]) -> int:
        if not physical_keys or not self.is_available() or self.redis is None:
            return 0
        separator = self.registry.separator
        try:
            deleted = await self._unlink(physical_keys)
            for physical_key in physical_keys:
                deleted += await self._unlink_pattern(f"{escape_pattern(physical_key + separator)}*")
        except redis.RedisError:
            logger.exception("Keyspace expiry error for %s keys", len(physical_keys))
            return 0
        if deleted > 0:
            logger.info("Cache EXPIRE: %s keys under %s roots", deleted, len(physical_keys))
        return deleted

    async def _unlink_pattern(self, pattern: str) -> int:
        """UNLINK keys matching pattern using SCAN in chunks (non-blocking)."""
        deleted = 0
        chunk: list[str] = []
        async for key in self.redis.scan_iter(match=pattern):
            chunk.append(key)
            if len(chunk) >= REDIS_UNLINK_CHUNK:
                deleted += await self._unlink(chunk)
                chunk = []
        if chunk:
            deleted += await self._unlink(chunk)
        return deleted

    async def _unlink(self, keys: list[str]) -> int:
        deleted = 0
        for start in range(0, len(keys), REDIS_UNLINK_CHUNK):
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.unlink(*keys[start : start + REDIS_UNLINK_CHUNK])
                results = await pipe.execute()
            deleted += sum(int(r or 0) for r in results)
        return deleted
