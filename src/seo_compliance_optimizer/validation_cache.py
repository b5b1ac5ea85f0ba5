"""
Thread-safe cache of validation results.

Entries are keyed by ``(content_hash, config_hash)`` so a result computed
under one configuration is never returned for another. The cache is bounded
by entry count (least recently used evicted first) and by age.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

from .models import Document, ValidationResult

logger = logging.getLogger(__name__)


def content_hash(document: Document) -> str:
    """Stable digest of every document field that affects detection."""
    payload = json.dumps(
        {
            "title": document.title,
            "content": document.body,
            "meta_description": document.meta_description,
            "focus_keyword": document.focus_keyword,
            "secondary_keywords": list(document.secondary_keywords),
        },
        sort_keys=True,
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class ValidationCache:
    """
    In-memory LRU + TTL cache shared across sessions.

    All reads and writes go through a single lock.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[float, ValidationResult]] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0, "expirations": 0}

    def get(self, content_key: str, config_key: str) -> Optional[ValidationResult]:
        key = (content_key, config_key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            stored_at, result = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return result

    def set(self, content_key: str, config_key: str, result: ValidationResult) -> None:
        key = (content_key, config_key)
        with self._lock:
            self._entries[key] = (self._clock(), result)
            self._entries.move_to_end(key)
            self._stats["sets"] += 1
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1

    def invalidate(self, content_key: Optional[str] = None) -> int:
        """
        Drop cached results.

        Args:
            content_key: Only drop entries for this content hash. None clears
                everything.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            if content_key is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k in self._entries if k[0] == content_key]
                for key in keys:
                    del self._entries[key]
                removed = len(keys)
        logger.debug(f"Invalidated {removed} cached validation results")
        return removed

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["size"] = len(self._entries)
        lookups = stats["hits"] + stats["misses"]
        stats["hit_rate"] = round(stats["hits"] / lookups * 100, 2) if lookups else 0.0
        return stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
