# ABOUTME: Provides a caller-owned cache of per-goal engine artifacts with explicit invalidation.
# ABOUTME: Replaces hidden process-wide caches; callers inject it where reuse is wanted.

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    invalidations: int = 0


class GoalCache(Generic[V]):
    """
    Map of goal id -> value with optional time-to-live.

    Nothing here is shared between instances; the owner decides its lifetime and
    calls invalidate() when the underlying learner or corpus data changes.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[Hashable, Tuple[V, float]] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, goal_id: Hashable) -> bool:
        entry = self._entries.get(goal_id)
        return entry is not None and not self._expired(entry)

    def _expired(self, entry: Tuple[V, float]) -> bool:
        return self._ttl is not None and self._clock() - entry[1] > self._ttl

    def _lookup(self, goal_id: Hashable) -> object:
        entry = self._entries.get(goal_id)
        if entry is None:
            self.stats.misses += 1
            return _MISSING
        if self._expired(entry):
            del self._entries[goal_id]
            self.stats.expirations += 1
            self.stats.misses += 1
            return _MISSING
        self.stats.hits += 1
        return entry[0]

    def get(self, goal_id: Hashable) -> Optional[V]:
        value = self._lookup(goal_id)
        return None if value is _MISSING else value

    def set(self, goal_id: Hashable, value: V) -> None:
        self._entries[goal_id] = (value, self._clock())

    def get_or_compute(self, goal_id: Hashable, compute: Callable[[], V]) -> V:
        cached = self._lookup(goal_id)
        if cached is not _MISSING:
            return cached
        value = compute()
        self.set(goal_id, value)
        return value

    def invalidate(self, goal_id: Hashable) -> bool:
        removed = self._entries.pop(goal_id, None) is not None
        if removed:
            self.stats.invalidations += 1
        return removed

    def clear(self) -> None:
        self.stats.invalidations += len(self._entries)
        self._entries.clear()
