"""TTL key-value cache used as the connect-failure breaker and the verdict cache."""
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from database import CacheEntry


class FailureCache(ABC):
    """A small TTL cache. Entries set with ttl_seconds=None never expire; ttl_seconds=0 expires at once."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryFailureCache(FailureCache):
    """In-process cache for a single worker."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None

            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class SqlFailureCache(FailureCache):
    """
    Cache backed by the cache_entries table.

    Every worker pointed at the same database shares the breaker and the
    verdicts. Each operation runs in its own short session.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = datetime.utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        with self._session_factory() as db:
            entry = db.get(CacheEntry, key)
            if entry is None:
                return None

            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                db.delete(entry)
                db.commit()
                return None

            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None

        with self._session_factory() as db:
            db.merge(CacheEntry(key=key, value=value, expires_at=expires_at, updated_at=now))
            db.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            db.query(CacheEntry).filter(CacheEntry.key == key).delete()
            db.commit()
