"""Simple cache abstractions."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from faceswap_bot.services.clock import Clock, SystemClock


class Cache(Protocol):
    """Cache interface for simple key-value data."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present and not expired."""

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store a cached value with a TTL in seconds."""

    def add(self, key: str, value: object, ttl_seconds: int) -> bool:
        """Store a value only if the key is absent; return True when stored."""

    def sweep(self) -> int:
        """Drop expired entries."""


@dataclass
class _CacheEntry:
    value: object
    expires_at: datetime


@dataclass
class InMemoryCache(Cache):
    """In-memory TTL cache, also used as the seen-set for message dedup."""

    clock: Clock = field(default_factory=SystemClock)
    _entries: dict[str, _CacheEntry] = field(default_factory=dict)

    def get(self, key: str) -> object | None:
        """Return a cached value if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock.now() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store a cached value with a TTL."""
        expires_at = self.clock.now() + timedelta(seconds=ttl_seconds)
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def add(self, key: str, value: object, ttl_seconds: int) -> bool:
        """Store a value unless a live entry exists."""
        if self.get(key) is not None:
            return False
        self.set(key, value, ttl_seconds)
        return True

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self.clock.now()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
