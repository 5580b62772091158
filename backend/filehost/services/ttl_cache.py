"""In-process key/value cache with per-entry expiry.

Values are stored together with a monotonic deadline. Expired entries are
treated as absent and dropped lazily on access and during prefix scans, so no
background sweeper is needed.

All access happens on the event loop thread and every mutation is a single
dict operation, which keeps set/delete atomic per key.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """Time-bounded key -> value mapping."""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return default
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys_with_prefix(self, prefix: str) -> set[str]:
        """Return live keys starting with ``prefix``.

        Scans every key, O(total entries).
        """
        now = self._clock()
        keys = set()
        for key, (expires_at, _) in list(self._entries.items()):
            if expires_at <= now:
                self._entries.pop(key, None)
            elif key.startswith(prefix):
                keys.add(key)
        return keys

    def delete_prefix(self, prefix: str) -> int:
        """Drop every live key starting with ``prefix``. Returns the count."""
        keys = self.keys_with_prefix(prefix)
        for key in keys:
            self._entries.pop(key, None)
        if keys:
            logger.debug("Invalidated %d cache entries under %s", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
