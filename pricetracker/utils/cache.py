"""Optional read-through cache for listings and statistics."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from typing import Any, Protocol

import redis

logger = logging.getLogger(__name__)

PRODUCTS_CACHE_TTL = int(os.environ.get("PRODUCTS_CACHE_TTL", 300))
STATS_CACHE_TTL = int(os.environ.get("STATS_CACHE_TTL", 120))

STATS_CACHE_KEY = "stats:general"
LISTING_KEY_PREFIX = "products:"


def listing_cache_key(
    site: str | None,
    search_query: str | None,
    page: int,
    limit: int,
    sort_by: str,
    order: str,
) -> str:
    """Deterministic fingerprint of a listing query."""
    params = [site or "all", search_query or "all", page, limit, sort_by, order]
    digest = hashlib.sha256(json.dumps(params).encode()).hexdigest()
    return f"{LISTING_KEY_PREFIX}{digest}"


class Cache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def flush(self) -> None: ...

    def ping(self) -> bool: ...


class NullCache:
    """Used when no cache backend is configured; every read is a miss."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def flush(self) -> None:
        return None

    def ping(self) -> bool:
        return False


class RedisCache:
    """JSON values in redis. Backend errors are logged and treated as misses."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            decode_responses=True,
        )
        return cls(client)

    def get(self, key: str) -> Any | None:
        try:
            data = self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.client.setex(key, ttl, json.dumps(value))
        except (redis.RedisError, TypeError) as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)

    def flush(self) -> None:
        """Drop every listing and statistics entry this service wrote."""
        try:
            keys = list(self.client.scan_iter(match=f"{LISTING_KEY_PREFIX}*"))
            keys.append(STATS_CACHE_KEY)
            self.client.delete(*keys)
        except redis.RedisError as exc:
            logger.warning("Cache flush failed: %s", exc)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def create_cache_from_env() -> Cache:
    """Build the cache from REDIS_URL; fall back to a no-op cache when unset or disabled."""
    enabled = os.environ.get("CACHE_ENABLED", "1").lower() not in {"0", "false", "no"}
    url = os.environ.get("REDIS_URL", "")
    if not enabled or not url:
        logger.info("Running without cache")
        return NullCache()
    try:
        return RedisCache.from_url(url)
    except ValueError as exc:
        logger.warning("Invalid REDIS_URL, running without cache: %s", exc)
        return NullCache()
