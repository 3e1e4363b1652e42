from cache import TTLCache
from tests.conftest import FakeClock


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("chart", [1, 2, 3])
    assert cache.get("chart") == [1, 2, 3]
    assert "chart" in cache

    clock.now += 59
    assert cache.get("chart") == [1, 2, 3]
    clock.now += 1
    assert cache.get("chart") is None
    assert "chart" not in cache
    assert len(cache) == 0


def test_per_entry_ttl_and_invalidation():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("short", "a", ttl=5)
    cache.set("long", "b")
    clock.now += 10
    assert cache.get("short", "missing") == "missing"
    assert cache.get("long") == "b"

    cache.invalidate("long")
    cache.invalidate("never-set")
    assert cache.get("long") is None


def test_clear():
    cache = TTLCache(60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert len(cache) == 0
