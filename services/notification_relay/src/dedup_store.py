"""
Time-bounded set of recently seen change-event keys.
"""

import logging
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW = 300.0  # seconds


class DedupStore:
    """
    Remembers event keys for a fixed retention window.

    ``is_duplicate`` checks and records a key in one locked step, so two
    near-simultaneous deliveries of the same key cannot both pass. Entries
    are only removed by ``sweep``; a key older than the window that has not
    been swept yet is still treated as new and its timestamp refreshed.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_DEDUP_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def is_duplicate(self, key: str) -> bool:
        """Return True if ``key`` was seen within the window; record it otherwise."""
        now = self._clock()
        with self._lock:
            first_seen = self._entries.get(key)
            if first_seen is not None and now - first_seen < self.retention_seconds:
                return True
            self._entries[key] = now
            return False

    def sweep(self) -> int:
        """Drop entries older than the window. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, first_seen in self._entries.items()
                if now - first_seen >= self.retention_seconds
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"Dedup sweep removed {len(expired)} expired keys")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
