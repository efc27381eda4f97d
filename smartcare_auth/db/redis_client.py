# smartcare_auth/db/redis_client.py
import json
import logging
from datetime import datetime
from typing import Any, Optional

import redis

from smartcare_auth.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None
_connect_attempted = False


def get_redis() -> Optional[redis.Redis]:
    """
    Lazily connect to Redis. Returns None when REDIS_URL is not set
    or the server is unreachable, so callers can degrade gracefully.
    """
    global _client, _connect_attempted

    if _connect_attempted:
        return _client
    _connect_attempted = True

    if not settings.REDIS_URL:
        logger.info("Redis not configured, cooldown features disabled")
        return None

    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        client.ping()
        _client = client
        logger.info("✅ Redis connected successfully")
    except redis.RedisError as e:
        logger.warning("⚠️ Redis connection failed: %s. Redis features will be disabled", e)
        _client = None

    return _client


def reset_redis() -> None:
    """Forget the cached connection (used on shutdown and by tests)."""
    global _client, _connect_attempted
    if _client is not None:
        _client.close()
    _client = None
    _connect_attempted = False


def datetime_serializer(obj):
    """Convert datetime objects to ISO format strings"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def safe_json_dumps(data: Any) -> str:
    """Safely serialize data to JSON, handling datetime objects"""
    return json.dumps(data, default=datetime_serializer)


def r_get(key: str) -> Optional[Any]:
    """Get value from Redis with error handling"""
    rc = get_redis()
    if not rc:
        return None

    try:
        v = rc.get(key)
        return json.loads(v) if v else None
    except redis.RedisError as e:
        logger.warning("Redis GET error for key '%s': %s", key, e)
        return None
    except json.JSONDecodeError as e:
        logger.warning("JSON decode error for key '%s': %s", key, e)
        return None


def r_set(key: str, value: Any, ex: Optional[int] = None) -> bool:
    """Set value in Redis with error handling"""
    rc = get_redis()
    if not rc:
        return False

    try:
        rc.set(key, safe_json_dumps(value), ex=ex)
        return True
    except redis.RedisError as e:
        logger.warning("Redis SET error for key '%s': %s", key, e)
        return False
    except (TypeError, ValueError) as e:
        logger.warning("Serialization error for key '%s': %s", key, e)
        return False
