from __future__ import annotations

import random
import secrets
from collections import deque
from collections.abc import Callable, Collection, Hashable, Sequence
from threading import Lock
from typing import Protocol, TypeVar

T = TypeVar("T")

DEFAULT_HARD_CAP = 100
SHUFFLE_FRACTION = 0.8


class RandomSource(Protocol):
    def randbelow(self, n: int) -> int:
        """Uniform integer in ``[0, n)``; ``n`` is always positive."""


class SystemRandomSource:
    def randbelow(self, n: int) -> int:
        return secrets.randbelow(int(n))


class SeededRandomSource:
    def __init__(self, seed: int | str) -> None:
        self._rng = random.Random(seed)

    def randbelow(self, n: int) -> int:
        return self._rng.randrange(int(n))


def build_random_source(seed: str | None = None) -> RandomSource:
    seed = (seed or "").strip()
    if seed:
        return SeededRandomSource(seed)
    return SystemRandomSource()


def _clamp_count(count: int, *, available: int, hard_cap: int) -> int:
    try:
        k = int(count)
    except (TypeError, ValueError):
        k = 1
    k = max(1, k)
    return min(k, int(available), max(1, int(hard_cap)))


def _partial_shuffle(n: int, k: int, rng: RandomSource) -> list[int]:
    pool = list(range(n))
    for i in range(k):
        j = i + rng.randbelow(n - i)
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:k]


def _scan_from(n: int, offset: int, *, used: set[int], avoid: Collection[int]) -> int:
    # Callers keep len(used) < n, so an unused index always exists.
    free = [(offset + step) % n for step in range(n) if (offset + step) % n not in used]
    for idx in free:
        if idx not in avoid:
            return idx
    return free[0]


def sample_indices(
    n: int,
    count: int,
    rng: RandomSource,
    *,
    avoid: Collection[int] = (),
    hard_cap: int = DEFAULT_HARD_CAP,
) -> list[int]:
    """
    Picks distinct indices in ``[0, n)`` in random order.

    When the request covers most of the pool a partial Fisher-Yates shuffle is
    used and ``avoid`` is ignored. Otherwise indices are drawn at random,
    rejecting repeats and members of ``avoid``; after a bounded number of
    rejections the next free index after a random offset is taken, so the loop
    always terminates.
    """

    n = int(n)
    if n <= 0:
        return []
    k = _clamp_count(count, available=n, hard_cap=hard_cap)

    if k >= SHUFFLE_FRACTION * n:
        return _partial_shuffle(n, k, rng)

    max_retries = max(10, 3 * k)
    used: set[int] = set()
    picked: list[int] = []
    for _ in range(k):
        choice: int | None = None
        for _attempt in range(max_retries):
            candidate = rng.randbelow(n)
            if candidate in used or candidate in avoid:
                continue
            choice = candidate
            break
        if choice is None:
            choice = _scan_from(n, rng.randbelow(n), used=used, avoid=avoid)
        used.add(choice)
        picked.append(choice)
    return picked


def sample_unique(
    items: Sequence[T],
    count: int,
    rng: RandomSource,
    *,
    avoid: Collection[int] = (),
    hard_cap: int = DEFAULT_HARD_CAP,
) -> list[T]:
    return [items[i] for i in sample_indices(len(items), count, rng, avoid=avoid, hard_cap=hard_cap)]


class RecentHistory:
    """Per-device-type FIFO of recently served entries, shared by all requests of the process."""

    def __init__(self, *, capacity: int = 50) -> None:
        self._capacity = max(0, int(capacity))
        self._lock = Lock()
        self._entries: dict[str, deque[Hashable]] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def snapshot(self, key: str) -> frozenset[Hashable]:
        with self._lock:
            entries = self._entries.get(key)
            return frozenset(entries) if entries else frozenset()

    def record(self, key: str, values: Sequence[Hashable]) -> None:
        with self._lock:
            self._record_locked(key, values)

    def draw(self, key: str, choose: Callable[[frozenset[Hashable]], list[T]]) -> list[T]:
        """Calls ``choose`` with the entries recorded for ``key`` and records what it returns, under one lock."""
        with self._lock:
            entries = self._entries.get(key)
            picked = choose(frozenset(entries) if entries else frozenset())
            self._record_locked(key, picked)
        return picked

    def _record_locked(self, key: str, values: Sequence[Hashable]) -> None:
        if self._capacity <= 0 or not values:
            return
        entries = self._entries.setdefault(key, deque())
        for value in values:
            try:
                entries.remove(value)
            except ValueError:
                pass
            entries.append(value)
        while len(entries) > self._capacity:
            entries.popleft()

    def size(self, key: str) -> int:
        with self._lock:
            entries = self._entries.get(key)
            return len(entries) if entries else 0

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class Sampler:
    def __init__(
        self,
        rng: RandomSource | None = None,
        *,
        history: RecentHistory | None = None,
        hard_cap: int = DEFAULT_HARD_CAP,
    ) -> None:
        self.rng = rng or SystemRandomSource()
        self.history = history
        self.hard_cap = max(1, int(hard_cap))

    def pick(self, key: str, items: Sequence[str], count: int) -> list[str]:
        if not items:
            return []

        def choose(recent: frozenset[Hashable]) -> list[str]:
            avoid = {i for i, item in enumerate(items) if item in recent} if recent else set()
            return sample_unique(items, count, self.rng, avoid=avoid, hard_cap=self.hard_cap)

        if self.history is None or self.history.capacity <= 0:
            return choose(frozenset())
        return self.history.draw(key, choose)
