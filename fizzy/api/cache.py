from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

DEFAULT_CACHE_TTL_S = 5 * 60


@dataclass(frozen=True)
class CacheEntry:
    etag: str
    data: Any
    timestamp: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    keys: list[str] = field(default_factory=list)


class EtagCache:
    """In-memory ETag cache keyed by fully resolved GET URL.

    Entries older than ``ttl_s`` are treated as absent and dropped on the
    lookup that notices them. The cache only feeds ``If-None-Match``; it
    never answers a request without asking the server.
    """

    def __init__(self, ttl_s: float = DEFAULT_CACHE_TTL_S, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def get(self, url: str) -> CacheEntry | None:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self._ttl_s:
            del self._entries[url]
            return None
        return entry

    def set(self, url: str, etag: str, data: Any) -> CacheEntry:
        entry = CacheEntry(etag=etag, data=data, timestamp=self._clock())
        self._entries[url] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), keys=list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries
