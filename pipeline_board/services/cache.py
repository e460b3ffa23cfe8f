"""
Pipeline Board - TTL cache

Explicit expiry with an injected clock so staleness is testable.
ttl_seconds <= 0 disables the cache (every get misses).
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        stored_at, _ = entry
        return self._clock() - stored_at < self.ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None if missing or expired (expired entries are evicted)"""
        if not self.is_fresh(key):
            self._entries.pop(key, None)
            return None
        return self._entries[key][1]

    def set(self, key: str, value: Any):
        if not self.enabled:
            return
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()
