from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


@dataclass
class CacheEntry:
    value: Any
    expires_at: float  # epoch seconds


class TTLCache:
    """
    In-memory cache with an explicit TTL and size bound.

    Always injected into the component that uses it (projection engine,
    simulation service); there is no process-wide instance.
    Keys are any hashable value, typically a tuple of the inputs.
    """

    def __init__(
        self,
        default_ttl_seconds: int = 300,
        max_items: int = 512,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.default_ttl_seconds = int(default_ttl_seconds)
        self.max_items = int(max_items)
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._store: Dict[Hashable, CacheEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: Hashable) -> Optional[Tuple[Any, int]]:
        """
        Returns (value, remaining_ttl_seconds) if present and not expired, else None.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            now = self._clock()
            if entry.expires_at <= now:
                self._store.pop(key, None)
                return None
            return entry.value, max(0, int(entry.expires_at - now))

    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        expires_at = self._clock() + max(1, ttl)

        with self._lock:
            if key not in self._store and len(self._store) >= self.max_items:
                self._evict_locked()
            self._store[key] = CacheEntry(value=value, expires_at=expires_at)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any], ttl_seconds: Optional[int] = None) -> Any:
        hit = self.get(key)
        if hit is not None:
            return hit[0]
        value = compute()
        self.set(key, value, ttl_seconds=ttl_seconds)
        return value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _evict_locked(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._store.items() if e.expires_at <= now]
        for k in expired:
            self._store.pop(k, None)
        if len(self._store) < self.max_items:
            return
        # drop the soonest-expiring 10%
        items = sorted(self._store.items(), key=lambda kv: kv[1].expires_at)
        for k, _ in items[: max(1, self.max_items // 10)]:
            self._store.pop(k, None)
