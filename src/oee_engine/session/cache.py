"""Response cache (md5 of canonical request JSON → parsed response).

An explicit handle owned by whoever creates it and injected into sessions.
Identical request bodies reuse the earlier response instead of another
round trip.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Generic, TypeVar

from config.settings import settings

logger = logging.getLogger(__name__)

V = TypeVar("V")


def request_key(body: dict[str, Any]) -> str:
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(canonical.encode()).hexdigest()


class ResultCache(Generic[V]):
    """Bounded insertion-ordered cache. Evicts the oldest ~25% when full."""

    def __init__(self, max_entries: int | None = None):
        self.max_entries = settings.result_cache_max_entries if max_entries is None else max_entries
        self._entries: dict[str, V] = {}
        self.hits = 0
        self.misses = 0

    def init(self) -> None:
        """Start from a clean slate, including hit/miss counters."""
        self._entries = {}
        self.hits = 0
        self.misses = 0

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, body: dict[str, Any]) -> bool:
        return request_key(body) in self._entries

    def get(self, body: dict[str, Any]) -> V | None:
        key = request_key(body)
        if key in self._entries:
            self.hits += 1
            logger.debug("Result cache hit %s", key)
            return self._entries[key]
        self.misses += 1
        return None

    def put(self, body: dict[str, Any], value: V) -> None:
        if self.max_entries <= 0:
            return
        key = request_key(body)
        if key not in self._entries and len(self._entries) >= self.max_entries:
            keys = list(self._entries.keys())
            for k in keys[: max(len(keys) // 4, 1)]:
                self._entries.pop(k, None)
        self._entries[key] = value

    def invalidate(self, body: dict[str, Any]) -> bool:
        """Drop one entry. Returns whether it was present."""
        return self._entries.pop(request_key(body), None) is not None
