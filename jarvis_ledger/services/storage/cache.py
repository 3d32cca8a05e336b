"""
Lookup Cache

Account ids and the category allow-list change rarely but are looked up
on almost every write. The cache keeps them per key class, each class
with its own TTL, and reads time from an injected clock so tests can
move time forward without sleeping.

The cache belongs to a record store instance; there is no module-level
cache state.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, NamedTuple, Optional


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


class CacheEntry(NamedTuple):
    value: Any
    fetched_at: datetime


class LookupCache:
    """Key -> (value, fetched_at) mapping with a TTL per key class."""

    def __init__(
        self,
        ttls: Optional[dict[str, timedelta]] = None,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utc_now,
    ):
        self._ttls = dict(ttls or {})
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    def ttl_for(self, key_class: str) -> timedelta:
        return self._ttls.get(key_class, self._default_ttl)

    def set_ttl(self, key_class: str, ttl: timedelta) -> None:
        self._ttls[key_class] = ttl

    def get(self, key_class: str, key: str) -> Optional[Any]:
        """Return a fresh cached value, or None if missing or expired."""
        entry = self._entries.get((key_class, key))
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_for(key_class):
            return None
        return entry.value

    def peek(self, key_class: str, key: str) -> Optional[Any]:
        """Return the cached value even if expired (last known good)."""
        entry = self._entries.get((key_class, key))
        return entry.value if entry else None

    def set(self, key_class: str, key: str, value: Any) -> None:
        self._entries[(key_class, key)] = CacheEntry(value, self._clock())

    def invalidate(self, key_class: str, key: Optional[str] = None) -> None:
        """Drop one key, or a whole key class."""
        if key is not None:
            self._entries.pop((key_class, key), None)
            return
        for cached_key in [k for k in self._entries if k[0] == key_class]:
            del self._entries[cached_key]
