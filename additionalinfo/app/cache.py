"""In-process TTL cache for computed statistics snapshots."""

import time
from typing import Any

from additionalinfo.app.config import get_settings


class SnapshotCache:
    def __init__(self):
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        """Return the cached value if it has not expired yet."""
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() > expires_at:
            del self._store[key]
            return None
        return value

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value, by default for the Cache-Control max-age."""
        if ttl is None:
            ttl = get_settings().cache_control_seconds
        self._store[key] = (time.monotonic() + ttl, value)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._store.clear()
        else:
            self._store.pop(key, None)


statistics_cache = SnapshotCache()
