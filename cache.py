from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

V = TypeVar("V")

TTL = Union[float, int, timedelta]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class _Shard(Generic[V]):
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: Dict[str, CacheEntry[V]] = {}


class MemoryCache(Generic[V]):
    """Thread-safe in-memory cache with a TTL per entry.

    Expired entries are evicted lazily on read. ``cleanup_expired`` sweeps the
    rest and is meant to be driven by an external scheduler; the cache never
    starts a thread or timer of its own.

    Keys are spread over independently locked shards so that operations on
    unrelated keys do not contend.
    """

    def __init__(
        self,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if shards < 1:
            raise ValueError("shards must be at least 1")
        self._shards: List[_Shard[V]] = [_Shard() for _ in range(shards)]
        self._clock = clock

    def _shard_for(self, key: str) -> _Shard[V]:
        return self._shards[hash(key) % len(self._shards)]

    def set(self, key: str, value: V, ttl: TTL) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (or a timedelta).

        A zero or negative TTL stores an entry that is already expired.
        """
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        shard = self._shard_for(key)
        with shard.lock:
            shard.entries[key] = entry

    def get(self, key: str) -> Tuple[Optional[V], bool]:
        """Return ``(value, True)`` for a live entry, ``(None, False)`` otherwise."""
        shard = self._shard_for(key)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None:
                return None, False
            if entry.is_expired(self._clock()):
                del shard.entries[key]
                return None, False
            return entry.value, True

    def delete(self, key: str) -> None:
        shard = self._shard_for(key)
        with shard.lock:
            shard.entries.pop(key, None)

    def _snapshot_keys(self, shard: _Shard[V]) -> List[str]:
        with shard.lock:
            return list(shard.entries)

    def clear(self) -> None:
        """Remove every entry, one key per critical section."""
        for shard in self._shards:
            for key in self._snapshot_keys(shard):
                with shard.lock:
                    shard.entries.pop(key, None)

    def cleanup_expired(self) -> int:
        """Evict every entry expired as of the start of the sweep.

        Each key is checked and evicted under its own short hold of the shard
        lock, so a key overwritten while the sweep was running is left alone.
        Returns the number of evicted entries.
        """
        now = self._clock()
        evicted = 0
        for shard in self._shards:
            for key in self._snapshot_keys(shard):
                with shard.lock:
                    entry = shard.entries.get(key)
                    if entry is not None and entry.is_expired(now):
                        del shard.entries[key]
                        evicted += 1
        return evicted

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        _value, found = self.get(key)
        return found

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total

    def __repr__(self) -> str:
        return f"MemoryCache(shards={len(self._shards)}, size={len(self)})"
