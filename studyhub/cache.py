"""
Redis cache for AI responses.

Identical generation requests (same prompt, provider, model, temperature and
token budget) within the TTL are answered from Redis instead of the provider.
When Redis is unreachable caching is skipped and requests go to the provider.
"""

import hashlib
import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)

AI_RESPONSE_PREFIX = "ai_response"

# Redis connection (lazy-loaded); False once a connection attempt has failed
_redis_client = None


def get_redis_client():
    """
    Get or create the Redis client.

    Returns:
        Redis client instance or None if Redis is unavailable
    """
    global _redis_client

    if _redis_client is False:
        return None
    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        client.ping()
    except RedisError as e:
        logger.warning(f"Redis connection failed: {e} - AI response caching disabled")
        _redis_client = False
        return None

    logger.info("Redis connection established for AI response cache")
    _redis_client = client
    return _redis_client


def generate_cache_key(prefix: str, content: str, **kwargs) -> str:
    """
    Deterministic key from content plus the parameters that affect the result.

    Returns:
        Key like "ai_response:3f2a9c..."
    """
    hash_input = content.strip()
    if kwargs:
        hash_input += json.dumps(kwargs, sort_keys=True)
    return f"{prefix}:{hashlib.sha256(hash_input.encode('utf-8')).hexdigest()[:32]}"


def get_cached_result(key: str) -> Optional[Dict]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        cached = client.get(key)
    except RedisError as e:
        logger.warning(f"Cache read error for '{key}': {e}")
        return None

    if not cached:
        logger.debug(f"Cache MISS: {key}")
        return None
    try:
        logger.debug(f"Cache HIT: {key}")
        return json.loads(cached)
    except json.JSONDecodeError:
        logger.warning(f"Discarding unreadable cache entry '{key}'")
        return None


def set_cached_result(key: str, result: Any, ttl_seconds: Optional[int] = None) -> bool:
    """
    Store a JSON-serializable result.

    Returns:
        True if stored, False if Redis is unavailable or the write failed
    """
    client = get_redis_client()
    if client is None:
        return False

    try:
        client.setex(key, ttl_seconds or settings.ai_cache_ttl_seconds, json.dumps(result))
        return True
    except (RedisError, TypeError) as e:
        logger.warning(f"Cache write error for '{key}': {e}")
        return False


def clear_ai_cache() -> int:
    """Delete every cached AI response. Returns the number of keys removed."""
    client = get_redis_client()
    if client is None:
        return 0

    try:
        keys = list(client.scan_iter(f"{AI_RESPONSE_PREFIX}:*"))
        return client.delete(*keys) if keys else 0
    except RedisError as e:
        logger.warning(f"Cache clear error: {e}")
        return 0
