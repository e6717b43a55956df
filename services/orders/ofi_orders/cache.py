"""
Redis caching utilities for the Orders service.

Caches order detail views (order joined with design, tailor and customer).
Entries are invalidated whenever the order changes; a cache outage only
costs a database round trip.
"""
import os
import json
import logging
from typing import Optional, Any
import redis

logger = logging.getLogger(__name__)

# Initialize Redis client (an empty REDIS_URL disables caching)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
redis_client = redis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None

# Cache TTLs (in seconds)
ORDER_CACHE_TTL = int(os.getenv("ORDER_CACHE_TTL", "60"))


def order_detail_key(order_id: int) -> str:
    return f"orders:detail:{order_id}"


def get_cache(key: str) -> Optional[Any]:
    """
    Get a value from Redis cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    if redis_client is None:
        return None
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Cache get error: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = ORDER_CACHE_TTL) -> bool:
    """
    Set a value in Redis cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (must be JSON serializable)
        ttl: Time to live in seconds

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        redis_client.setex(key, ttl, json.dumps(value))
        return True
    except (redis.RedisError, TypeError) as e:
        logger.warning(f"Cache set error: {e}")
        return False


def delete_cache(key: str) -> bool:
    """
    Delete a key from Redis cache.

    Args:
        key: Cache key to delete

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        redis_client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache delete error: {e}")
        return False


def invalidate_order(order_id: int) -> bool:
    return delete_cache(order_detail_key(order_id))
