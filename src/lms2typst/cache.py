"""In-memory TTL cache for sanitized activity content.

The cache is an ordinary object: create one at startup, hand it to the code
that needs it and clear it on shutdown.
"""

from __future__ import annotations

import hashlib
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Iterator, Optional, Protocol, Union

from .core import LOG

TTL = Union[float, int, timedelta]

ACTIVITY_PREFIX = "activity:"


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: Optional[TTL] = None) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...

    def has(self, key: str) -> bool:
        ...

    def clear(self, prefix: Optional[str] = None) -> bool:
        ...


class ReadWriteLock:
    """Shared/exclusive lock; a waiting writer holds back new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class CacheEntry:
    value: str
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


def _ttl_seconds(ttl: Optional[TTL]) -> Optional[float]:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = ReadWriteLock()
        self._store: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock.read():
            entry = self._store.get(key)
        if entry is None:
            return None
        if not entry.expired(self._clock()):
            return entry.value

        with self._lock.write():
            # Another writer may have replaced the entry meanwhile.
            if self._store.get(key) is entry:
                del self._store[key]
        LOG.debug("Cache entry expired: %s", key)
        return None

    def set(self, key: str, value: str, ttl: Optional[TTL] = None) -> bool:
        seconds = _ttl_seconds(ttl)
        expires_at = self._clock() + seconds if seconds is not None else None
        with self._lock.write():
            self._store[key] = CacheEntry(value=value, expires_at=expires_at)
        return True

    def delete(self, key: str) -> bool:
        with self._lock.write():
            return self._store.pop(key, None) is not None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self, prefix: Optional[str] = None) -> bool:
        with self._lock.write():
            if not prefix:
                self._store.clear()
            else:
                for key in [k for k in self._store if k.startswith(prefix)]:
                    del self._store[key]
        return True

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._store)


def url_hash(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def activity_key(url: str) -> str:
    return f"{ACTIVITY_PREFIX}{url_hash(url)}"
