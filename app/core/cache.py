"""
Cache-aside layer for list and detail responses.

Reads go through ``get_or_load``: a hit returns the cached JSON payload as-is,
a miss runs the loader against the store and caches its result. Writes call
``invalidate`` which drops every cached listing for the affected scope plus
the entity's own entry. The store stays the source of truth; any Redis
failure is logged and treated as a miss.
"""

import hashlib
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import UUID

from redis.exceptions import RedisError

from app.core.schemas import ListQuery

logger = logging.getLogger(__name__)

ALL_SCOPE = "all"

ScopeId = Optional[Union[UUID, str]]


def _scope(school_id: ScopeId) -> str:
    return str(school_id) if school_id is not None else ALL_SCOPE


class CacheKeys:
    """Single source of cache key formats, used by both read and invalidation paths."""

    @staticmethod
    def list_prefix(collection: str, school_id: ScopeId = None) -> str:
        return f"{collection}:list:{_scope(school_id)}:"

    @staticmethod
    def list_key(
        collection: str,
        school_id: ScopeId,
        query: ListQuery,
        filters: Optional[Dict[str, Any]] = None,
    ) -> str:
        filter_part = ",".join(
            f"{name}={value}" for name, value in sorted((filters or {}).items()) if value is not None
        ) or "-"
        return (
            f"{CacheKeys.list_prefix(collection, school_id)}"
            f"{filter_part}:{query.page}:{query.limit}:{query.sort.field}:{query.sort.direction.value}"
        )

    @staticmethod
    def entity_key(collection: str, entity_id: Union[UUID, str]) -> str:
        return f"{collection}:item:{entity_id}"

    @staticmethod
    def blacklist_key(token: str) -> str:
        # Tokens are long; key on a digest instead of the raw value
        return f"blacklist:{hashlib.sha256(token.encode('utf-8')).hexdigest()}"


class ResponseCache:
    """Best-effort JSON cache over a ``redis.asyncio`` client."""

    def __init__(self, client, default_ttl: int = 300, entity_ttl: int = 600) -> None:
        self.client = client
        self.default_ttl = default_ttl
        self.entity_ttl = entity_ttl

    async def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = await self.client.get(key)
            return json.loads(raw) if raw is not None else None
        except (RedisError, OSError, ValueError) as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if self.client is None:
            return
        ttl = ttl or self.default_ttl
        if ttl <= 0:
            return
        try:
            await self.client.set(key, json.dumps(value, separators=(",", ":")), ex=ttl)
        except (RedisError, OSError, TypeError, ValueError) as e:
            logger.warning("Cache set failed for %s: %s", key, e)

    async def exists(self, key: str) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.exists(key))
        except (RedisError, OSError) as e:
            logger.warning("Cache lookup failed for %s: %s", key, e)
            return False

    async def delete(self, *keys: str) -> None:
        if self.client is None or not keys:
            return
        try:
            await self.client.delete(*keys)
        except (RedisError, OSError) as e:
            logger.warning("Cache delete failed for %s: %s", keys, e)

    async def delete_prefix(self, prefix: str) -> None:
        """Drop every key starting with ``prefix`` (SCAN based, never KEYS)."""
        if self.client is None:
            return
        try:
            batch = []
            async for key in self.client.scan_iter(match=f"{prefix}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    await self.client.delete(*batch)
                    batch = []
            if batch:
                await self.client.delete(*batch)
        except (RedisError, OSError) as e:
            logger.warning("Cache invalidation failed for prefix %s: %s", prefix, e)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        cached = await self.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def invalidate(
        self,
        collection: str,
        school_id: ScopeId = None,
        entity_id: Optional[Union[UUID, str]] = None,
    ) -> None:
        """Invalidate listings for the owning scope, the cross-school scope and the entity entry."""
        if school_id is not None:
            await self.delete_prefix(CacheKeys.list_prefix(collection, school_id))
        await self.delete_prefix(CacheKeys.list_prefix(collection, None))
        if entity_id is not None:
            await self.delete(CacheKeys.entity_key(collection, entity_id))
