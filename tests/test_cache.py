from modules.storage import CacheClient

from .conftest import FakeClock

def make_cache(clock: FakeClock, *, maxsize=None, ttl=300.0)->CacheClient[str]:
  return CacheClient(name="Test", maxsize=maxsize, ttl=ttl, clock=clock)

class TestCacheClient:
  def test_hit_before_expiry_miss_after(self, clock: FakeClock):
    cache = make_cache(clock)
    cache.set("structure:a", "value")
    clock.advance(299)
    assert cache.get("structure:a") == "value"
    clock.advance(1)
    assert cache.get("structure:a") is None
    # Stale entries are dropped when they are looked up.
    assert len(cache) == 0

  def test_per_entry_ttl(self, clock: FakeClock):
    cache = make_cache(clock)
    cache.set("short", "value", ttl=1)
    cache.set("long", "value")
    clock.advance(2)
    assert cache.get("short") is None
    assert cache.get("long") == "value"

  def test_least_recently_used_entries_are_evicted(self, clock: FakeClock):
    cache = make_cache(clock, maxsize=2)
    cache.set("a", "1")
    cache.set("b", "2")
    cache.get("a")
    cache.set("c", "3")
    assert cache.get("b") is None
    assert cache.get("a") == "1"
    assert cache.get("c") == "3"

  def test_invalidate_by_key_prefix_and_predicate(self, clock: FakeClock):
    cache = make_cache(clock)
    for key in ["structure:a", "tabWidgets:a:1", "tabWidgets:b:1", "execution:a:x"]:
      cache.set(key, key)
    assert cache.invalidate(prefix="tabWidgets:") == ["tabWidgets:a:1", "tabWidgets:b:1"]
    assert cache.invalidate(key="missing") == []
    invalidated = cache.invalidate(key="structure:a", predicate=lambda key: key.startswith("structure:"))
    assert invalidated == ["structure:a"]
    assert cache.get("execution:a:x") == "execution:a:x"
