from __future__ import annotations

import json
import logging
from typing import Any

import redis

from ..core.config import Settings

logger = logging.getLogger(__name__)


def _get_sync_redis(settings: Settings) -> redis.Redis | None:
    """
    Create a fresh sync Redis client per call so Celery workers
    don't hold onto closed event loops. None when no REDIS_URL is configured.
    """
    if not settings.REDIS_URL:
        return None
    return redis.from_url(
        str(settings.REDIS_URL),
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )


def _close(client: redis.Redis) -> None:
    try:
        client.close()
    except redis.RedisError:
        pass


def cache_read(settings: Settings, key: str) -> Any:
    """Deserialized value, or None on a miss / expired key / unavailable Redis."""
    client = _get_sync_redis(settings)
    if client is None:
        return None
    try:
        val = client.get(key)
        return json.loads(val) if val is not None else None
    except redis.RedisError as exc:
        logger.warning("Redis cache unavailable: %s", exc, extra={"stage": "cache"})
        return None
    finally:
        _close(client)


def cache_write(settings: Settings, key: str, value: Any, ttl: int | None = None) -> None:
    client = _get_sync_redis(settings)
    if client is None:
        return
    try:
        serialized = json.dumps(value)
        if ttl is not None:
            client.set(key, serialized, ex=ttl)
        else:
            client.set(key, serialized)
    except redis.RedisError as exc:
        logger.warning("Redis cache unavailable: %s", exc, extra={"stage": "cache"})
    finally:
        _close(client)


def cache_delete(settings: Settings, key: str) -> None:
    client = _get_sync_redis(settings)
    if client is None:
        return
    try:
        client.delete(key)
    except redis.RedisError as exc:
        logger.warning("Redis cache unavailable: %s", exc, extra={"stage": "cache"})
    finally:
        _close(client)


async def cached_get(
    settings: Settings,
    key: str,
    set_value: Any | None = None,
    ttl: int | None = None,
) -> Any:
    """
    Async TTL cache backed by Redis.

    Usage:

        value = await cached_get(settings, "k")                  # read
        await cached_get(settings, "k", set_value=value, ttl=60) # write with TTL

    - On read: returns cached value (deserialized JSON) or None if missing/expired.
    - On write: stores value (serialized JSON) with optional TTL and returns it.
    - Without Redis (unset URL or connection errors) every read is a miss.
    """
    if set_value is None:
        return cache_read(settings, key)
    cache_write(settings, key, set_value, ttl)
    return set_value
