"""
TTL cache used to memoize generated metadata.
"""

import time
from typing import Any


class Cache:
    """In-memory cache keyed by string with per-entry expiry on a monotonic clock."""

    def __init__(self, default_ttl: float = 3600) -> None:
        self.default_ttl = default_ttl
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        """
        Get value from cache by key.

        Args:
            key: Cache key

        Returns:
            Cached value if present and not expired, None otherwise
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store a value. A non-positive TTL means the value is not cached at all.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (defaults to the cache's default_ttl)
        """
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (time.monotonic() + effective_ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = time.monotonic()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
