"""Keyed TTL cache for realtime predictions."""

import asyncio
import time
from collections.abc import Hashable
from typing import Generic, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Per-key TTL cache with one async lock per key.

    The per-key lock lets callers double-check the cache after acquiring it,
    so concurrent requests for the same stop issue one upstream fetch.
    Expired entries are pruned lazily on writes.
    """

    def __init__(self, ttl: float = 60.0, max_entries: int = 4096):
        """Initialize the cache.

        Args:
            ttl: Time-to-live in seconds for cached values.
            max_entries: Soft cap before expired entries are swept.
        """
        self._ttl = ttl
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[float, T]] = {}
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> T | None:
        """Return the cached value for key, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            return None
        return value

    def set(self, key: Hashable, value: T) -> None:
        if len(self._entries) >= self._max_entries:
            self._sweep()
        self._entries[key] = (time.monotonic() + self._ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def lock(self, key: Hashable) -> asyncio.Lock:
        """Async lock for coordinating fetches of one key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self) -> None:
        now = time.monotonic()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
