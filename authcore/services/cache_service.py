"""Redis-backed storage for the permission cache."""

import json
from typing import Any, Dict, Optional
import logging

import redis

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    """Shares permission cache entries across processes.

    Keys are ``{prefix}:{user}:{field}``; expiry is handled by Redis, so
    ``sweep`` has nothing to do. Connection failures are logged and read as
    cache misses.
    """

    def __init__(self, url: str, prefix: str = "perm", client: Optional[redis.Redis] = None):
        self._url = url
        self._prefix = prefix
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                max_connections=100,
            )
        return self._client

    def _key(self, user_key: str, field: str) -> str:
        return f"{self._prefix}:{user_key}:{field}"

    def _delete_matching(self, pattern: str) -> int:
        keys = list(self.client.scan_iter(match=pattern))
        if keys:
            self.client.delete(*keys)
        return len(keys)

    def get(self, user_key: str, field: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(user_key, field))
        except redis.RedisError as exc:
            logger.warning("Redis error reading permission cache: %s", exc)
            return None
        return json.loads(raw) if raw is not None else None

    def set(self, user_key: str, field: str, value: Any, ttl_seconds: int) -> None:
        try:
            self.client.setex(self._key(user_key, field), ttl_seconds, json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Redis error writing permission cache: %s", exc)

    def invalidate(self, user_key: str) -> int:
        try:
            return self._delete_matching(f"{self._prefix}:{user_key}:*")
        except redis.RedisError as exc:
            logger.error("Redis error invalidating permission cache for %s: %s", user_key, exc)
            return 0

    def clear(self) -> int:
        try:
            return self._delete_matching(f"{self._prefix}:*")
        except redis.RedisError as exc:
            logger.error("Redis error clearing permission cache: %s", exc)
            return 0

    def sweep(self) -> int:
        return 0

    def stats(self) -> Dict[str, int]:
        try:
            total = sum(1 for _ in self.client.scan_iter(match=f"{self._prefix}:*"))
        except redis.RedisError:
            total = 0
        return {"total": total, "active": total, "expired": 0}

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return self.client.ping()
        except redis.ConnectionError:
            return False
