# backend/modules/orders/utils/order_locks.py

"""
Per-order mutual exclusion for reconciliation.

Locks live in an explicit registry keyed by ``business_id:client_generated_id``
rather than in module globals, so a single-process deployment can use
in-memory locks and a horizontally scaled one can switch to Redis through
configuration. Both registries are re-entrant per thread: the orchestrator
holds the lock across read, decide and apply, and the applier may ask for
the same key again.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, Iterator, Optional

import redis

from core.config import get_settings
from ..exceptions.sync_exceptions import LockTimeoutError, StorageError

logger = logging.getLogger(__name__)


def order_lock_key(business_id: Any, client_generated_id: Optional[str],
                   order_id: Optional[int] = None) -> str:
    """Lock key shared by the batch sync path and the manual resolution path"""
    if client_generated_id:
        return f"{business_id}:{client_generated_id}"
    return f"{business_id}:order-{order_id}"


class OrderLockRegistry(ABC):
    """Keyed lock store with bounded acquisition"""

    def __init__(self):
        self._local = threading.local()

    def _held(self) -> set:
        if not hasattr(self._local, "keys"):
            self._local.keys = set()
        return self._local.keys

    @contextmanager
    def lock(self, key: str, timeout: float) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: if the lock is not acquired within ``timeout`` seconds
        """
        held = self._held()
        if key in held:
            yield
            return

        handle = self._acquire(key, timeout)
        if handle is None:
            logger.warning(f"Timed out after {timeout}s waiting for order lock {key}")
            raise LockTimeoutError(key, timeout)

        held.add(key)
        try:
            yield
        finally:
            held.discard(key)
            self._release(key, handle)

    @abstractmethod
    def _acquire(self, key: str, timeout: float) -> Optional[Any]:
        """Return a handle on success, None on timeout"""

    @abstractmethod
    def _release(self, key: str, handle: Any) -> None:
        ...


class InProcessOrderLockRegistry(OrderLockRegistry):
    """threading.Lock per key; entries are dropped once nobody waits on them"""

    def __init__(self):
        super().__init__()
        self._mutex = threading.Lock()
        self._locks: Dict[str, list] = {}  # key -> [lock, waiters]

    def _acquire(self, key: str, timeout: float) -> Optional[Any]:
        with self._mutex:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        if entry[0].acquire(timeout=timeout):
            return entry

        self._forget(key, entry)
        return None

    def _release(self, key: str, handle: Any) -> None:
        handle[0].release()
        self._forget(key, handle)

    def _forget(self, key: str, entry: list) -> None:
        with self._mutex:
            entry[1] -= 1
            if entry[1] == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    def active_keys(self):
        with self._mutex:
            return set(self._locks)


class RedisOrderLockRegistry(OrderLockRegistry):
    """Distributed variant built on redis-py's Lock"""

    def __init__(self, redis_client: Optional[redis.Redis] = None,
                 ttl_seconds: Optional[int] = None):
        super().__init__()
        settings = get_settings()
        self.redis_client = redis_client or self._get_redis_client(settings)
        self.ttl_seconds = ttl_seconds or settings.ORDER_LOCK_TTL_SECONDS

    @staticmethod
    def _get_redis_client(settings) -> redis.Redis:
        if settings.redis_url:
            return redis.Redis.from_url(settings.redis_url)
        return redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
        )

    def _acquire(self, key: str, timeout: float) -> Optional[Any]:
        lock = self.redis_client.lock(
            f"order_lock:{key}", timeout=self.ttl_seconds, blocking_timeout=timeout
        )
        try:
            acquired = lock.acquire(blocking=True)
        except redis.RedisError as e:
            raise StorageError(
                f"Lock backend unavailable: {e}", "LOCK_BACKEND_ERROR", {"lock_key": key}
            ) from e
        return lock if acquired else None

    def _release(self, key: str, handle: Any) -> None:
        try:
            handle.release()
        except redis.exceptions.LockError:
            # TTL expired while we held it; the write already committed or rolled back
            logger.warning(f"Order lock {key} expired before release")


@lru_cache()
def get_order_lock_registry() -> OrderLockRegistry:
    """Process-wide registry selected by ORDER_LOCK_BACKEND"""
    settings = get_settings()
    if settings.ORDER_LOCK_BACKEND == "redis":
        return RedisOrderLockRegistry()
    return InProcessOrderLockRegistry()
