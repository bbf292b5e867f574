"""
In-memory TTL cache for derived views (performance profiles, set summaries).

Usage:
    cache = TTLCache(max_entries=1024, default_ttl=300)
    cache.set("profile:student-1:30", profile)
    cache.get("profile:student-1:30")
    cache.delete_prefix("profile:student-1:")
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from examprep.core.clock import Clock, SystemClock


class TTLCache:
    """Thread-safe in-memory cache with per-entry expiry."""

    def __init__(self, max_entries: int = 1024, default_ttl: int = 300, clock: Clock | None = None):
        self._values: dict[str, Any] = {}
        self._expiry: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.clock = clock or SystemClock()

    def get(self, key: str) -> Any | None:
        """Get value from cache if not expired."""
        with self._lock:
            if key in self._values:
                if self.clock.now() < self._expiry[key]:
                    return self._values[key]
                del self._values[key]
                del self._expiry[key]
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set value in cache with TTL (seconds)."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            if len(self._values) >= self.max_entries and key not in self._values:
                self._evict_oldest()
            self._values[key] = value
            self._expiry[key] = self.clock.now() + timedelta(seconds=ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._values:
                del self._values[key]
                del self._expiry[key]
                return True
        return False

    def delete_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        with self._lock:
            doomed = [k for k in self._values if k.startswith(prefix)]
            for key in doomed:
                del self._values[key]
                del self._expiry[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries under {prefix!r}")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._expiry.clear()

    def __len__(self) -> int:
        return len(self._values)

    def _evict_oldest(self) -> None:
        """Evict the entry closest to expiry. Caller holds the lock."""
        if not self._expiry:
            return
        oldest = min(self._expiry, key=self._expiry.__getitem__)
        del self._values[oldest]
        del self._expiry[oldest]
