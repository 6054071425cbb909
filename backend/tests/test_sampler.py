from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from wallpaper.core.sampler import (
    RecentHistory,
    Sampler,
    SeededRandomSource,
    SystemRandomSource,
    build_random_source,
    sample_indices,
    sample_unique,
)


class _ConstantSource:
    """Always returns 0: forces the rejection loop into its sequential fallback."""

    def randbelow(self, n: int) -> int:
        return 0


def test_sample_unique_returns_exactly_count_distinct_items() -> None:
    rng = SeededRandomSource(42)
    for n in range(1, 30):
        items = [f"img{i}.webp" for i in range(n)]
        for count in range(1, n + 1):
            picked = sample_unique(items, count, rng)
            assert len(picked) == count
            assert len(set(picked)) == count
            assert set(picked) <= set(items)


def test_sample_unique_count_above_size_returns_everything() -> None:
    rng = SeededRandomSource("seed")
    items = ["a", "b", "c", "d"]
    picked = sample_unique(items, 10, rng)
    assert sorted(picked) == items


def test_sample_unique_clamps_count_to_at_least_one() -> None:
    rng = SeededRandomSource(1)
    assert len(sample_unique(["a", "b", "c"], 0, rng)) == 1
    assert len(sample_unique(["a", "b", "c"], -5, rng)) == 1


def test_sample_unique_respects_hard_cap() -> None:
    rng = SeededRandomSource(1)
    items = [str(i) for i in range(500)]
    assert len(sample_unique(items, 300, rng, hard_cap=100)) == 100


def test_sample_unique_empty_source() -> None:
    assert sample_unique([], 3, SeededRandomSource(1)) == []


def test_seeded_source_is_deterministic() -> None:
    items = [str(i) for i in range(50)]
    a = sample_unique(items, 5, SeededRandomSource(7))
    b = sample_unique(items, 5, SeededRandomSource(7))
    assert a == b


def test_avoid_set_is_honoured_when_pool_allows() -> None:
    avoid = set(range(0, 90))
    picked = sample_indices(100, 5, SeededRandomSource(3), avoid=avoid)
    assert len(picked) == 5
    assert not (set(picked) & avoid)


def test_fallback_scan_terminates_with_degenerate_random_source() -> None:
    picked = sample_indices(20, 5, _ConstantSource(), avoid={0, 1})
    assert picked == [2, 3, 4, 5, 6]


def test_fallback_reuses_avoided_indices_when_nothing_else_is_left() -> None:
    picked = sample_indices(10, 3, _ConstantSource(), avoid=set(range(10)))
    assert sorted(picked) == [0, 1, 2]


def test_large_fraction_uses_full_shuffle_and_ignores_avoid() -> None:
    picked = sample_indices(10, 9, SeededRandomSource(5), avoid=set(range(10)))
    assert len(set(picked)) == 9


def test_system_random_source_range() -> None:
    rng = SystemRandomSource()
    for _ in range(100):
        assert 0 <= rng.randbelow(3) < 3


def test_build_random_source() -> None:
    assert isinstance(build_random_source(""), SystemRandomSource)
    assert isinstance(build_random_source(None), SystemRandomSource)
    assert isinstance(build_random_source("123"), SeededRandomSource)


def test_recent_history_evicts_oldest_first() -> None:
    history = RecentHistory(capacity=3)
    history.record("pc", ["a", "b"])
    history.record("pc", ["c", "d", "e"])
    assert history.snapshot("pc") == frozenset({"c", "d", "e"})
    assert history.size("pc") == 3
    assert history.snapshot("pe") == frozenset()


def test_recent_history_refreshes_existing_entries() -> None:
    history = RecentHistory(capacity=3)
    history.record("pc", ["a", "b", "c"])
    history.record("pc", ["a"])
    history.record("pc", ["d"])
    assert history.snapshot("pc") == frozenset({"a", "c", "d"})


def test_recent_history_zero_capacity_records_nothing() -> None:
    history = RecentHistory(capacity=0)
    history.record("pc", ["a"])
    assert history.snapshot("pc") == frozenset()


def test_recent_history_clear() -> None:
    history = RecentHistory(capacity=5)
    history.record("pe", ["x"])
    history.clear()
    assert history.size("pe") == 0


def test_sampler_avoids_recent_picks_within_history_window() -> None:
    items = [f"{i}.webp" for i in range(100)]
    sampler = Sampler(SeededRandomSource(11), history=RecentHistory(capacity=50))
    served = [sampler.pick("pc", items, 1)[0] for _ in range(50)]
    assert len(set(served)) == 50


def test_sampler_history_is_per_device_type() -> None:
    history = RecentHistory(capacity=10)
    sampler = Sampler(SeededRandomSource(2), history=history)
    sampler.pick("pc", ["a", "b", "c", "d", "e"], 1)
    assert history.size("pc") == 1
    assert history.size("pe") == 0


def test_sampler_with_tiny_pool_never_fails() -> None:
    items = ["a", "b", "c"]
    sampler = Sampler(SeededRandomSource(9), history=RecentHistory(capacity=50))
    for _ in range(20):
        picked = sampler.pick("pe", items, 1)
        assert len(picked) == 1
        assert picked[0] in items


def test_sampler_without_history() -> None:
    sampler = Sampler(SeededRandomSource(4))
    assert sampler.pick("pc", [], 3) == []
    assert len(sampler.pick("pc", ["a", "b", "c", "d", "e", "f"], 3)) == 3


@pytest.mark.parametrize("count", [1, 2, 5])
def test_sampler_batches_are_distinct(count: int) -> None:
    sampler = Sampler(SeededRandomSource(count), history=RecentHistory(capacity=50))
    items = [str(i) for i in range(30)]
    picked = sampler.pick("pc", items, count)
    assert len(picked) == count
    assert len(set(picked)) == count


def test_scan_fallback_returns_unused_index_when_everything_is_avoided() -> None:
    # Every draw hits index 0, which is taken after the first pick.
    picked = sample_indices(4, 3, _ConstantSource(), avoid={0, 1, 2, 3})
    assert len(set(picked)) == 3


def test_recent_history_draw_passes_entries_and_records_result() -> None:
    history = RecentHistory(capacity=5)
    history.record("pc", ["a"])
    seen: list[frozenset] = []

    def choose(recent: frozenset) -> list[str]:
        seen.append(recent)
        return ["b", "c"]

    assert history.draw("pc", choose) == ["b", "c"]
    assert seen == [frozenset({"a"})]
    assert history.snapshot("pc") == frozenset({"a", "b", "c"})


def test_concurrent_picks_see_each_other_through_history() -> None:
    items = [f"{i}.webp" for i in range(60)]
    sampler = Sampler(SystemRandomSource(), history=RecentHistory(capacity=50))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: sampler.pick("pc", items, 1)[0], range(50)))

    assert len(set(results)) == 50
