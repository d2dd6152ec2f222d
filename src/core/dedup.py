"""Deduplication helpers (core domain)."""

from __future__ import annotations

import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_for_fingerprint(text: str) -> str:
    """Normalize text for deterministic fingerprinting."""

    return _collapse_whitespace(text).lower()


def compute_fingerprint(origin_id: str, normalized_text: str, mode: str) -> Optional[str]:
    """Return a fingerprint hash based on dedup mode."""

    if mode == "off":
        return None

    if mode == "global":
        payload = normalized_text
    elif mode == "per_origin":
        payload = f"{origin_id}\n{normalized_text}"
    else:
        raise ValueError(f"Unsupported dedup mode: {mode}")

    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class DeduplicationEntry:
    """One key observed inside the window."""

    key: str
    first_seen_at: float
    last_seen_at: float
    occurrence_count: int = 1


class TimeWindowCache:
    """Associative cache that remembers keys for a fixed window.

    The window is measured from the first sighting: repeats inside it bump the
    occurrence count but do not extend it. Expired entries are evicted lazily
    once the cache grows past ``max_entries`` and on ``evict_expired()``.
    """

    def __init__(
        self,
        window_seconds: float,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, DeduplicationEntry] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._window > 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[DeduplicationEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry, self._clock()):
                return None
            return entry

    def check_and_record(self, key: str) -> bool:
        """Record ``key`` and return True when it was already seen in the window."""

        if not self.enabled:
            return False

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and not self._expired(entry, now):
                entry.occurrence_count += 1
                entry.last_seen_at = now
                return True

            self._entries[key] = DeduplicationEntry(key=key, first_seen_at=now, last_seen_at=now)
            if len(self._entries) > self._max_entries:
                self._evict_locked(now)
            return False

    def evict_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

        with self._lock:
            return self._evict_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _expired(self, entry: DeduplicationEntry, now: float) -> bool:
        return now - entry.first_seen_at >= self._window

    def _evict_locked(self, now: float) -> int:
        stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in stale:
            del self._entries[key]
        if stale:
            LOGGER.debug("Evicted %s expired entries, %s remaining", len(stale), len(self._entries))
        return len(stale)
