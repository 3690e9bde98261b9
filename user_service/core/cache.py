"""
Redis cache configuration and utilities.

This module provides a Redis connection pool and a user cache that stores
stripped user records keyed by id. Every Redis failure is logged and treated
as a cache miss so the database stays the source of truth.
"""

from typing import Any, Optional
import json
import logging
from redis import Redis, ConnectionPool, ConnectionError, RedisError, TimeoutError
from redis.retry import Retry
from redis.backoff import ExponentialBackoff

from .config import Settings

# Cache key templates
USER_KEY = "user:{}"  # Format with user ID

# Configure logging
logger = logging.getLogger(__name__)

# Redis connection retry strategy
retry_strategy = Retry(
    ExponentialBackoff(
        cap=2,  # Maximum backoff time in seconds
        base=0.1  # Base multiplier for backoff
    ),
    retries=2,
    supported_errors=(
        ConnectionError,
        TimeoutError,
    )
)


def create_redis_client(settings: Settings) -> Redis:
    """
    Create a Redis client with its own connection pool.

    Args:
        settings: Application settings

    Returns:
        Redis: Client instance (connections are opened lazily)
    """
    pool = ConnectionPool(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        decode_responses=True,
        max_connections=10,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30
    )
    return Redis(connection_pool=pool, retry=retry_strategy)


def serialize_value(value: Any) -> str:
    """
    Serialize value to JSON string.

    Raises:
        ValueError: If value cannot be serialized
    """
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize value: {e}")
        raise ValueError(f"Could not serialize value: {e}")


def deserialize_value(value: str) -> Any:
    """
    Deserialize JSON string to value.

    Raises:
        ValueError: If value cannot be deserialized
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to deserialize value: {e}")
        raise ValueError(f"Could not deserialize value: {e}")


class UserCache:
    """Read-through cache of stripped user records."""

    def __init__(self, client: Redis, expire: int = 3600):
        self.client = client
        self.expire = expire

    def get(self, user_id: int) -> Optional[dict]:
        """
        Get a cached user record.

        Returns:
            Optional[dict]: Cached record, or None on miss or any cache error
        """
        key = USER_KEY.format(user_id)
        try:
            value = self.client.get(key)
            return deserialize_value(value) if value else None
        except ValueError:
            logger.warning(f"Dropping corrupted cache entry {key}")
            self.delete(user_id)
            return None
        except RedisError as e:
            logger.error(f"Failed to get cache key {key}: {e}")
            return None

    def set(self, user_id: int, record: dict) -> bool:
        """
        Cache a user record.

        Returns:
            bool: True if successful, False otherwise
        """
        key = USER_KEY.format(user_id)
        try:
            return bool(self.client.setex(key, self.expire, serialize_value(record)))
        except (RedisError, ValueError) as e:
            logger.error(f"Failed to set cache key {key}: {e}")
            return False

    def delete(self, user_id: int) -> bool:
        """
        Drop a cached user record.

        Returns:
            bool: True if the call reached Redis, False otherwise
        """
        key = USER_KEY.format(user_id)
        try:
            self.client.delete(key)
            return True
        except RedisError as e:
            logger.error(f"Failed to delete cache key {key}: {e}")
            return False

    def ping(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            bool: True if Redis is healthy, False otherwise
        """
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
