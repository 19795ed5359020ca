"""TTL 캐시 테스트."""

import pytest

from store.cache import (
    TTL_CHART,
    TTL_HISTORICAL,
    TTL_PRICES,
    CacheEntry,
    TTLCache,
    make_key,
)


class TestTTLCacheFreshness:
    """TTL 경계 판정."""

    def test_fresh_just_before_ttl(self, fake_clock):
        """TTL=15s, t=14.999 → fresh."""
        cache = TTLCache(15.0, clock=fake_clock)
        cache.set("btc-7", "X")

        fake_clock.advance(14.999)
        entry = cache.get("btc-7")
        assert entry is not None
        assert entry.value == "X"
        assert cache.is_fresh(entry)
        assert cache.get_fresh("btc-7") is entry

    def test_stale_just_after_ttl(self, fake_clock):
        """TTL=15s, t=15.001 → 존재하지만 stale."""
        cache = TTLCache(15.0, clock=fake_clock)
        cache.set("btc-7", "X")

        fake_clock.advance(15.001)
        entry = cache.get("btc-7")
        assert entry is not None
        assert entry.value == "X"
        assert not cache.is_fresh(entry)
        assert cache.get_fresh("btc-7") is None

    def test_overwrite_refreshes(self, fake_clock):
        """덮어쓰기 시 stored_at 갱신."""
        cache = TTLCache(15.0, clock=fake_clock)
        cache.set("k", 1)
        fake_clock.advance(20)
        cache.set("k", 2)

        entry = cache.get("k")
        assert entry.value == 2
        assert entry.stored_at == fake_clock.now
        assert cache.is_fresh(entry)

    def test_stale_entries_are_retained(self, fake_clock):
        """만료 엔트리는 삭제되지 않음."""
        cache = TTLCache(1.0, clock=fake_clock)
        cache.set("k", "v")
        fake_clock.advance(3600)
        assert "k" in cache
        assert len(cache) == 1

    def test_miss(self, fake_clock):
        cache = TTLCache(15.0, clock=fake_clock)
        assert cache.get("nope") is None
        assert cache.get_fresh("nope") is None


class TestTTLCacheMaintenance:
    """무효화 / eviction."""

    def test_invalidate_and_clear(self, fake_clock):
        cache = TTLCache(15.0, clock=fake_clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        cache.invalidate("missing")
        assert "a" not in cache
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0

    def test_max_entries_evicts_oldest(self, fake_clock):
        """max_entries 초과 시 가장 오래된 엔트리 제거."""
        cache = TTLCache(60.0, clock=fake_clock, max_entries=2)
        cache.set("a", 1)
        fake_clock.advance(1)
        cache.set("b", 2)
        fake_clock.advance(1)
        cache.set("c", 3)

        assert "a" not in cache
        assert "b" in cache and "c" in cache

    def test_overwrite_does_not_evict(self, fake_clock):
        cache = TTLCache(60.0, clock=fake_clock, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert len(cache) == 2
        assert cache.get("a").value == 3

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            TTLCache(0)
        with pytest.raises(ValueError):
            TTLCache(10, max_entries=0)


class TestCacheHelpers:

    def test_make_key(self):
        assert make_key("Bitcoin", 7) == "bitcoin-7"
        assert make_key("usd-coin") == "usd-coin"

    def test_entry_age(self):
        entry = CacheEntry(value=1, stored_at=100.0)
        assert entry.age(130.0) == 30.0

    def test_ttl_ordering(self):
        """변동성이 낮은 데이터일수록 TTL이 길다."""
        assert TTL_PRICES < TTL_CHART < TTL_HISTORICAL
