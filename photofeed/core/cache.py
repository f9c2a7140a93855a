import json
import logging
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as redis

from photofeed.config_secrets import JWKS_CACHE_SECONDS, REDIS_URL, USER_CACHE_SECONDS

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


async def init_cache():
    """Initialize Redis connection (no-op when REDIS_URL is empty)"""
    global redis_client
    if REDIS_URL:
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)


async def close_cache():
    """Close Redis connection"""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


def _serialize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(item) for item in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    return str(obj)


async def _get_json(key: str) -> Optional[Any]:
    if not redis_client:
        return None
    try:
        cached = await redis_client.get(key)
    except redis.RedisError:
        logger.warning("Redis read failed for %s", key, exc_info=True)
        return None
    if not cached:
        return None
    try:
        return json.loads(cached)
    except ValueError:
        logger.warning("Discarding malformed cache entry %s", key)
        return None


async def _set_json(key: str, value: Any, expiry: int) -> None:
    if not redis_client:
        return
    try:
        await redis_client.setex(key, expiry, json.dumps(_serialize(value)))
    except redis.RedisError:
        logger.warning("Redis write failed for %s", key, exc_info=True)


# Identity provider signing keys
async def cache_jwks(jwks_url: str, jwks: dict[str, Any], expiry: int = JWKS_CACHE_SECONDS):
    await _set_json(f"jwks:{jwks_url}", jwks, expiry)


async def get_cached_jwks(jwks_url: str) -> Optional[dict[str, Any]]:
    return await _get_json(f"jwks:{jwks_url}")


# External identity -> internal user
async def cache_identity_user(clerk_id: str, user: dict[str, Any], expiry: int = USER_CACHE_SECONDS):
    """Cache the internal user row resolved for an external identity"""
    await _set_json(f"identity:{clerk_id}", user, expiry)


async def get_cached_identity_user(clerk_id: str) -> Optional[dict[str, Any]]:
    return await _get_json(f"identity:{clerk_id}")
