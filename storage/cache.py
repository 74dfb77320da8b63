"""
Purpose: Explicit time-to-live cache for reference data lookups.
What it does:
- Stores values with an expiry computed from an injected clock.
- Evicts expired entries lazily on read.
- Clears everything, or only keys matching a regex pattern.

Instances are created by the caller and passed to whoever needs them,
so tests can drive expiry with a fake clock.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

Clock = Callable[[], float]

DEFAULT_TTL_SECONDS = 5 * 60


class TTLCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Clock = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default

            value, expires_at = entry
            if self._clock() > expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def clear(self, pattern: Optional[str] = None) -> int:
        """
        Remove every entry, or only keys matching `pattern` (regex search).
        Returns how many entries were removed.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed

            regex = re.compile(pattern)
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __contains__(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
