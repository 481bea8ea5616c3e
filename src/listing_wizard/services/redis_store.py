"""
Redis-backed key-value store
"""
import json
import logging
import urllib.parse
from typing import Any, Dict, Iterator, Optional

import redis

from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """
    Get Redis client if configured and reachable

    Args:
        redis_url: redis://[:password@]host:port/db

    Returns:
        Redis client instance or None if Redis is not available
    """
    if not redis_url:
        return None

    try:
        parsed = urllib.parse.urlparse(redis_url)
        client = redis.Redis(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 6379,
            password=parsed.password,
            db=int(parsed.path.lstrip('/')) if parsed.path.lstrip('/') else 0,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30
        )
        client.ping()
        logger.info(f"Redis connection established: {parsed.hostname}:{parsed.port or 6379}")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}")
        return None


class RedisKeyValueStore(KeyValueStore):
    """Stores each document as a JSON string under its key"""

    def __init__(self, redis_client: redis.Redis, namespace: str = "listing_wizard:"):
        """
        Args:
            redis_client: Connected client (decode_responses=True)
            namespace: Prefix added to every key so the database can be shared
        """
        self.redis_client = redis_client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self.redis_client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self.redis_client.set(self._key(key), json.dumps(value))

    def delete(self, key: str) -> bool:
        return bool(self.redis_client.delete(self._key(key)))

    def scan(self, prefix: str) -> Iterator[str]:
        offset = len(self.namespace)
        for full_key in self.redis_client.scan_iter(match=f"{self._key(prefix)}*"):
            yield full_key[offset:]
