# ABOUTME: Tests the caller-owned goal cache for TTL expiry and explicit invalidation.
# ABOUTME: Drives time through an injected clock so expiry is deterministic.

from src.common.cache import GoalCache


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_or_compute_only_computes_once():
    cache = GoalCache()
    calls = []

    def compute():
        calls.append(1)
        return ["queue"]

    assert cache.get_or_compute("goal-1", compute) == ["queue"]
    assert cache.get_or_compute("goal-1", compute) == ["queue"]
    assert len(calls) == 1
    assert cache.stats.hits == 1
    assert cache.stats.misses == 1


def test_entries_expire_after_ttl():
    clock = _Clock()
    cache = GoalCache(ttl_seconds=60, clock=clock)
    cache.set("goal-1", "v1")
    clock.now = 59
    assert cache.get("goal-1") == "v1"
    clock.now = 61
    assert cache.get("goal-1") is None
    assert cache.stats.expirations == 1
    assert len(cache) == 0


def test_invalidate_and_clear():
    cache = GoalCache()
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.invalidate("a")
    assert not cache.invalidate("a")
    assert "a" not in cache
    assert "b" in cache
    cache.clear()
    assert len(cache) == 0
    assert cache.stats.invalidations == 2


def test_instances_do_not_share_entries():
    first, second = GoalCache(), GoalCache()
    first.set("goal", 1)
    assert second.get("goal") is None


def test_membership_checks_leave_stats_alone():
    cache = GoalCache()
    cache.set("goal", 1)
    assert "goal" in cache
    assert "other" not in cache
    assert (cache.stats.hits, cache.stats.misses) == (0, 0)


def test_cached_none_is_not_recomputed():
    cache = GoalCache()
    calls = []

    def compute():
        calls.append(1)
        return None

    assert cache.get_or_compute("empty-goal", compute) is None
    assert cache.get_or_compute("empty-goal", compute) is None
    assert len(calls) == 1
    assert cache.stats.hits == 1
