"""Time-bounded cache of resolved permission decisions.

Two kinds of entries are kept per user, each with its own expiry:

  - ``(user_id, permission) -> bool``   a resolved check
  - ``user_id -> [permission, ...]``    the user's permission set

The cache is constructed explicitly and injected into the evaluator and the
role workflow. Storage is delegated to a backend: the in-memory backend is
process-local, the Redis backend (see ``cache_service``) can be shared by
several processes.

Writers pass the ``generation()`` they read before resolving; a write that
raced with an invalidation is discarded, so a check that loaded the old
grants cannot repopulate the cache after a role change has returned.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from authcore.core.config import settings

logger = logging.getLogger(__name__)

PERMISSIONS_FIELD = "__all__"


class CacheBackend(Protocol):
    def get(self, user_key: str, field: str) -> Optional[Any]: ...

    def set(self, user_key: str, field: str, value: Any, ttl_seconds: int) -> None: ...

    def invalidate(self, user_key: str) -> int: ...

    def clear(self) -> int: ...

    def sweep(self) -> int: ...

    def stats(self) -> Dict[str, int]: ...


class InMemoryCacheBackend:
    """Process-local backend guarded by a re-entrant lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, Dict[str, Tuple[Any, float]]] = {}

    def get(self, user_key: str, field: str) -> Optional[Any]:
        with self._lock:
            fields = self._entries.get(user_key)
            if not fields or field not in fields:
                return None
            value, expires_at = fields[field]
            if self._clock() >= expires_at:
                del fields[field]
                if not fields:
                    del self._entries[user_key]
                return None
            return value

    def set(self, user_key: str, field: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._entries.setdefault(user_key, {})[field] = (value, self._clock() + ttl_seconds)

    def invalidate(self, user_key: str) -> int:
        with self._lock:
            removed = self._entries.pop(user_key, None)
            return len(removed) if removed else 0

    def clear(self) -> int:
        with self._lock:
            count = sum(len(fields) for fields in self._entries.values())
            self._entries.clear()
            return count

    def sweep(self) -> int:
        now = self._clock()
        removed = 0
        with self._lock:
            for user_key in list(self._entries):
                fields = self._entries[user_key]
                for field in [f for f, (_, exp) in fields.items() if now >= exp]:
                    del fields[field]
                    removed += 1
                if not fields:
                    del self._entries[user_key]
        return removed

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            expiries = [exp for fields in self._entries.values() for _, exp in fields.values()]
        expired = sum(1 for exp in expiries if now >= exp)
        return {"total": len(expiries), "active": len(expiries) - expired, "expired": expired}


class PermissionCache:
    """Per-user permission cache with an optional background sweeper."""

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttl_seconds: Optional[int] = None,
        sweep_interval_seconds: Optional[int] = None,
    ):
        self.backend = backend if backend is not None else InMemoryCacheBackend()
        self.ttl_seconds = ttl_seconds or settings.PERMISSION_CACHE_TTL_SECONDS
        self.sweep_interval_seconds = (
            sweep_interval_seconds or settings.CACHE_SWEEP_INTERVAL_SECONDS
        )
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        # Bumped on every invalidation; writes tagged with an older
        # generation are dropped.
        self._lock = threading.RLock()
        self._epoch = 0
        self._generations: Dict[str, int] = {}

    # ---- generations ----

    def generation(self, user_id) -> Tuple[int, int]:
        """Token to read before resolving a user's permissions."""
        with self._lock:
            return self._epoch, self._generations.get(str(user_id), 0)

    def _store(self, user_id, field: str, value: Any, generation: Optional[Tuple[int, int]]) -> bool:
        with self._lock:
            if generation is not None and generation != self.generation(user_id):
                logger.debug("Discarded stale cache write for user %s (%s)", user_id, field)
                return False
            self.backend.set(str(user_id), field, value, self.ttl_seconds)
            return True

    # ---- decisions ----

    def get_decision(self, user_id, permission: str) -> Optional[bool]:
        value = self.backend.get(str(user_id), permission)
        return None if value is None else bool(value)

    def set_decision(
        self, user_id, permission: str, allowed: bool, generation: Optional[Tuple[int, int]] = None
    ) -> bool:
        return self._store(user_id, permission, bool(allowed), generation)

    # ---- permission sets ----

    def get_permissions(self, user_id) -> Optional[List[str]]:
        value = self.backend.get(str(user_id), PERMISSIONS_FIELD)
        return None if value is None else list(value)

    def set_permissions(
        self, user_id, permissions: List[str], generation: Optional[Tuple[int, int]] = None
    ) -> bool:
        return self._store(user_id, PERMISSIONS_FIELD, list(permissions), generation)

    # ---- invalidation ----

    def invalidate(self, user_id) -> int:
        user_key = str(user_id)
        with self._lock:
            self._generations[user_key] = self._generations.get(user_key, 0) + 1
            removed = self.backend.invalidate(user_key)
        logger.debug("Invalidated permission cache for user %s (%d entries)", user_id, removed)
        return removed

    def invalidate_many(self, user_ids) -> int:
        return sum(self.invalidate(user_id) for user_id in user_ids)

    def invalidate_all(self) -> int:
        with self._lock:
            self._epoch += 1
            self._generations.clear()
            removed = self.backend.clear()
        logger.info("Cleared all permission caches (%d entries)", removed)
        return removed

    def sweep(self) -> int:
        removed = self.backend.sweep()
        if removed:
            logger.debug("Cleaned %d expired permission cache entries", removed)
        return removed

    def stats(self) -> Dict[str, int]:
        return {**self.backend.stats(), "ttl": self.ttl_seconds}

    # ---- lifecycle ----

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def start(self) -> None:
        """Start the periodic sweeper thread (idempotent)."""
        if self.running:
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="permission-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        logger.info("Permission cache sweeper started (every %ss)", self.sweep_interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        if self._sweeper is None:
            return
        self._stop_event.set()
        self._sweeper.join(timeout)
        self._sweeper = None
        logger.info("Permission cache sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Permission cache sweep failed")


def build_permission_cache() -> PermissionCache:
    """Create the cache configured by ``settings.CACHE_BACKEND``."""
    if settings.CACHE_BACKEND == "redis":
        from authcore.services.cache_service import RedisCacheBackend

        return PermissionCache(backend=RedisCacheBackend(settings.REDIS_URL))
    return PermissionCache(backend=InMemoryCacheBackend())


permission_cache = build_permission_cache()
