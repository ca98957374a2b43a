"""
Bounded in-process cache with per-entry TTL.
Eviction drops the oldest-inserted entry once max_size is reached.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

from common.errors import InvalidInput


class TTLCache:
    """Thread-safe insertion-ordered cache. Eviction and expiry never raise."""

    def __init__(self, max_size: int = 1000, ttl: float = 3600, clock: Callable[[], float] = time.time):
        if max_size <= 0:
            raise InvalidInput(f"max_size must be positive, got {max_size}")
        if ttl <= 0:
            raise InvalidInput(f"ttl must be positive, got {ttl}")
        self.max_size = int(max_size)
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                self.misses += 1
                return None

            value, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None

            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                # Re-inserting moves the key to the back of the eviction order
                del self._entries[key]
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (value, self._clock() + self.ttl)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return False
            if self._clock() >= item[1]:
                del self._entries[key]
                return False
            return True

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        """Number of live entries; expired entries are purged first."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(self._entries)
