"""
TTL Map

Last-write-wins map whose entries expire after a fixed time-to-live.
Expiry is lazy on read, plus a sweep that runs every few writes so
unread entries do not pile up.
"""

import threading
import time
from typing import Any, Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class TTLMap(Generic[K, V]):
    """
    Time-bounded key/value cache.

    Features:
    - Lazy expiry on get/contains
    - Periodic sweep every `sweep_every` writes
    - Injectable clock for tests
    """

    DEFAULT_SWEEP_EVERY = 64

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = DEFAULT_SWEEP_EVERY
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sweep_every = max(1, sweep_every)
        self._entries: Dict[K, Tuple[float, V]] = {}
        self._writes = 0
        self._lock = threading.Lock()

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            self._writes += 1
            if self._writes % self._sweep_every == 0:
                self._sweep_locked()

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._writes = 0

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed"""
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def items(self) -> Iterator[Tuple[K, V]]:
        """Snapshot of live entries"""
        with self._lock:
            now = self._clock()
            live = [(k, v) for k, (expires_at, v) in self._entries.items() if now < expires_at]
        return iter(live)

    def __contains__(self, key: Any) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
