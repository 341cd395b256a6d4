# app/services/cache.py
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    stored_at: float  # epoch seconds


class TTLCache:
    """
    Bounded in-memory cache. Entries expire `ttl_seconds` after they were stored
    and are dropped lazily on read. When a write pushes the size over
    `max_entries`, the oldest entry by insertion order is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 30,
        max_entries: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self.store: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self.store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            self.store.pop(key, None)
            return None
        return entry

    def set(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(key=key, payload=value, stored_at=self._clock())
        # Overwriting keeps the key's original insertion slot (dict semantics).
        self.store[key] = entry
        if len(self.store) > self.max_entries:
            oldest = next(iter(self.store))
            self.store.pop(oldest, None)
        return entry

    def pop(self, key: str) -> Optional[CacheEntry]:
        return self.store.pop(key, None)

    def clear(self) -> None:
        self.store.clear()

    def __len__(self) -> int:
        return len(self.store)

    def __contains__(self, key: str) -> bool:
        return key in self.store


def balance_cache_key(apikey: str) -> str:
    return f"balance_{apikey}"
