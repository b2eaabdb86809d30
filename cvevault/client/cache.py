"""Response cache with TTL plus the map of in-flight requests used for deduplication."""

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_CACHE_TTL_SEC = 5 * 60.0


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


# Returned by ApiCache.get on a miss, so cached None/empty payloads stay distinguishable.
MISSING: Any = _Missing()


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with its insertion and expiry times (clock seconds)."""

    data: Any
    stored_at: float
    expires_at: float


def create_cache_key(path: str, params: dict[str, Any] | None = None) -> str:
    """Request signature: path plus params serialized with sorted keys."""
    if not params:
        return path
    return f"{path}{json.dumps(params, sort_keys=True, separators=(',', ':'))}"


class ApiCache:
    """
    Keyed cache with per-entry TTL and lazy eviction on read.

    The clock is injected so tests can move time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future] = {}

    def get(self, key: str) -> Any:
        """Return the live payload for key, or MISSING; an expired entry is dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return MISSING
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return MISSING
        return entry.data

    def set(self, key: str, data: Any, ttl: float = DEFAULT_CACHE_TTL_SEC) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(data=data, stored_at=now, expires_at=now + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop cached payloads and forget in-flight markers (running requests still finish)."""
        self._entries.clear()
        self._pending.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def get_pending(self, key: str) -> asyncio.Future | None:
        return self._pending.get(key)

    def set_pending(self, key: str, future: asyncio.Future) -> None:
        self._pending[key] = future

    def delete_pending(self, key: str, future: asyncio.Future | None = None) -> None:
        """Remove the in-flight marker; when future is given, only if it is still the registered one."""
        if future is not None and self._pending.get(key) is not future:
            return
        self._pending.pop(key, None)
