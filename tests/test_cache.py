import pytest

from goalfund.utils.cache import TTLCache


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = Clock()
    cache = TTLCache(default_ttl_seconds=10, clock=clock)
    cache.set(("plan", "g1"), "value")
    assert cache.get(("plan", "g1")) == ("value", 10)

    clock.now += 11
    assert cache.get(("plan", "g1")) is None
    assert len(cache) == 0


def test_size_bound():
    clock = Clock()
    cache = TTLCache(default_ttl_seconds=60, max_items=10, clock=clock)
    for i in range(25):
        clock.now += 1
        cache.set(i, i)
        assert len(cache) <= 10
    # the most recent entry always survives eviction
    assert cache.get(24) == (24, 60)


def test_get_or_compute_calls_once():
    cache = TTLCache(default_ttl_seconds=60)
    calls = {"n": 0}

    def compute():
        calls["n"] += 1
        return "fresh"

    assert cache.get_or_compute("k", compute) == "fresh"
    assert cache.get_or_compute("k", compute) == "fresh"
    assert calls["n"] == 1

    cache.delete("k")
    cache.get_or_compute("k", compute)
    assert calls["n"] == 2
    cache.clear()
    assert len(cache) == 0


def test_rejects_empty_bound():
    with pytest.raises(ValueError):
        TTLCache(max_items=0)
