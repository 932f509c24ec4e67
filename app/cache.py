"""
Redis response cache shared by the API instances.

Entries hold JSON payloads of GET responses and expire by TTL. Only the
appointment cache invalidator deletes entries; nothing updates them in place.
"""
import asyncio
import json
import logging
from functools import wraps
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlencode

import redis.asyncio as redis
from fastapi import Request
from fastapi.encoders import jsonable_encoder

from .config import CACHE_DELETE_CONCURRENCY, REDIS_URL

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: str = REDIS_URL) -> redis.Redis:
    """Create the async Redis client (standard or managed Redis URL)"""
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        masked_url = f"{protocol}:****@{url_parts[1]}"
    else:
        masked_url = redis_url
    logger.info(f"📡 Using Redis URL connection: {masked_url}")

    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=15,
        socket_timeout=30,
        retry_on_timeout=True,
        health_check_interval=30,
        max_connections=20,
    )


class Cache:
    """Redis cache wrapper with automatic serialization. Failures are logged, never raised."""

    def __init__(self, redis_client: redis.Redis, delete_concurrency: int = CACHE_DELETE_CONCURRENCY):
        self.redis_client = redis_client
        self._delete_concurrency = delete_concurrency

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        try:
            value = await self.redis_client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.warning(f"⚠️ Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Set value in cache with TTL in seconds"""
        try:
            await self.redis_client.set(key, json.dumps(value), ex=ttl)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete value from cache"""
        try:
            await self.redis_client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Cache delete error for {key}: {e}")
            return False

    async def delete_many(self, keys: Iterable[str]) -> int:
        """
        Delete keys concurrently, at most `delete_concurrency` in flight.

        Each failing key is logged on its own and skipped; the rest still go.
        Returns the number of successful delete calls.
        """
        semaphore = asyncio.Semaphore(self._delete_concurrency)

        async def _delete(key: str) -> bool:
            async with semaphore:
                return await self.delete(key)

        unique_keys = list(dict.fromkeys(keys))
        results = await asyncio.gather(*(_delete(key) for key in unique_keys))
        deleted = sum(1 for ok in results if ok)
        if deleted < len(unique_keys):
            logger.warning(f"⚠️ Cache invalidation incomplete: {deleted}/{len(unique_keys)} keys deleted")
        return deleted

    async def ping(self) -> bool:
        return await self.redis_client.ping()


# Cache key builders


def canonical_query(params: Optional[Mapping[str, Any]] = None) -> str:
    """Query string with parameters sorted by name and blank values dropped"""
    if not params:
        return ""
    items = sorted((k, str(v)) for k, v in params.items() if v is not None and str(v) != "")
    return urlencode(items)


def build_public_key(path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Key for responses that are identical for every caller"""
    query = canonical_query(params)
    return f"{path}?{query}" if query else path


def build_user_key(user_id: int, path: str, params: Optional[Mapping[str, Any]] = None, method: str = "GET") -> str:
    """Key for responses scoped to the authenticated user"""
    return f"user:{user_id}:{method}:{build_public_key(path, params)}"


def cached_response(ttl: int, user_scoped: bool = True):
    """
    Decorator to cache GET endpoint responses in Redis.

    The endpoint must accept `request: Request` and, when user_scoped,
    `principal: Principal`; both are read from the call kwargs FastAPI passes.

    Example:
        @router.get("/upcoming")
        @cached_response(ttl=CACHE_TTL_LISTINGS)
        async def upcoming(request: Request, principal: Principal = Depends(get_principal)):
            ...
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request: Request = kwargs["request"]
            cache: Cache = request.app.state.cache
            params = dict(request.query_params)

            if user_scoped:
                cache_key = build_user_key(kwargs["principal"].id, request.url.path, params, request.method)
            else:
                cache_key = build_public_key(request.url.path, params)

            cached_value = await cache.get(cache_key)
            if cached_value is not None:
                return cached_value

            result = await func(*args, **kwargs)
            payload = jsonable_encoder(result)
            await cache.set(cache_key, payload, ttl)
            return payload

        return wrapper

    return decorator
