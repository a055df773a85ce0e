"""
Cache Persistence
Key/value slot stores that let a reference cache survive process restarts.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis
from redis.connection import ConnectionPool

from ..errors import PersistenceError, QuotaExceeded

logger = logging.getLogger(__name__)


class PersistentSlotStore(ABC):
    """
    Minimal string key/value store.

    `set` raises QuotaExceeded when the backend refuses a write for lack of
    space; other failures are logged and reported as False/None.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> bool:
        """Store a value. Raises QuotaExceeded when out of space."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a value; True if something was removed."""

    def health_check(self) -> bool:
        return True


class MemorySlotStore(PersistentSlotStore):
    """
    In-process slot store with an optional byte quota.

    Useful for tests and single-process deployments without Redis.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        """
        Args:
            max_bytes: Total size limit of all stored values (None = unlimited)
        """
        self.max_bytes = max_bytes
        self._slots: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _size_without(self, key: str) -> int:
        return sum(len(value.encode("utf-8")) for k, value in self._slots.items() if k != key)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._slots.get(key)

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            if self.max_bytes is not None:
                needed = self._size_without(key) + len(value.encode("utf-8"))
                if needed > self.max_bytes:
                    raise QuotaExceeded(key, details={"needed_bytes": needed, "max_bytes": self.max_bytes})
            self._slots[key] = value
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._slots.pop(key, None) is not None


class RedisSlotStore(PersistentSlotStore):
    """
    Redis-backed slot store with connection pooling.

    Redis answering a write with an OOM error is reported as QuotaExceeded.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        client: Optional[redis.Redis] = None,
        key_prefix: str = "refcatalog:",
    ):
        """
        Initialize Redis slot store (connects lazily).

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            client: Pre-built client (tests pass a mock here)
            key_prefix: Namespace prepended to every key
        """
        self.key_prefix = key_prefix
        self.client = client
        self.pool = None

        if client is None:
            self.pool = ConnectionPool(
                host=host,
                port=port,
                db=db,
                decode_responses=True,
                max_connections=10,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            logger.info(f"Redis slot store initialized: {host}:{port} (db={db})")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _get_client(self) -> redis.Redis:
        """
        Get Redis client (lazy initialization).

        Raises:
            PersistenceError: If connection fails
        """
        if self.client is None:
            try:
                self.client = redis.Redis(connection_pool=self.pool)
                self.client.ping()
                logger.info("Redis connection established")
            except redis.ConnectionError as e:
                self.client = None
                raise PersistenceError(f"Failed to connect to Redis: {e}") from e

        return self.client

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._get_client().get(self._key(key))
        except (redis.RedisError, PersistenceError) as e:
            logger.error(f"Redis GET error for key '{key}': {e}")
            return None

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> bool:
        try:
            self._get_client().set(self._key(key), value)
            return True
        except redis.ResponseError as e:
            if str(e).startswith("OOM"):
                raise QuotaExceeded(key, details={"error": str(e)}) from e
            logger.error(f"Redis SET error for key '{key}': {e}")
            return False
        except (redis.RedisError, PersistenceError) as e:
            logger.error(f"Redis SET error for key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return self._get_client().delete(self._key(key)) > 0
        except (redis.RedisError, PersistenceError) as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            return False

    def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(self._get_client().ping())
        except (redis.RedisError, PersistenceError) as e:
            logger.error(f"Redis health check failed: {e}")
            return False
