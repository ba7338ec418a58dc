"""
Unit tests for SheetCache: TTL expiry, prefix invalidation, stats and the
request-deduplicating get_or_fetch.
"""
import eventlet
import pytest

from sheet_cache import SheetCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timed_cache(clock):
    return SheetCache(default_ttl=60, clock=clock)


class TestTTL:
    def test_value_is_served_until_ttl_elapses(self, timed_cache, clock):
        timed_cache.set("pex:bonus", [["a"]], ttl=60)
        clock.advance(60)
        assert timed_cache.get("pex:bonus") == [["a"]]

    def test_expired_value_is_absent_and_evicted(self, timed_cache, clock):
        timed_cache.set("pex:bonus", [["a"]], ttl=60)
        clock.advance(60.001)
        assert timed_cache.get("pex:bonus") is None
        assert timed_cache.stats()["size"] == 0

    def test_expired_entry_stays_until_accessed(self, timed_cache, clock):
        timed_cache.set("a:1", 1, ttl=1)
        clock.advance(5)
        # no background sweep: size still counts the stale entry
        assert timed_cache.stats()["size"] == 1
        timed_cache.get("a:1")
        assert timed_cache.stats()["size"] == 0

    def test_set_overwrites_and_restamps(self, timed_cache, clock):
        timed_cache.set("k:v", "old", ttl=10)
        clock.advance(8)
        timed_cache.set("k:v", "new", ttl=10)
        clock.advance(8)
        assert timed_cache.get("k:v") == "new"

    def test_default_ttl_applies(self, timed_cache, clock):
        timed_cache.set("k:v", "x")
        clock.advance(61)
        assert timed_cache.get("k:v") is None

    def test_missing_key_returns_none(self, timed_cache):
        assert timed_cache.get("nope") is None


class TestInvalidation:
    def test_invalidate_single_key(self, cache):
        cache.set("branches:data", 1)
        assert cache.invalidate("branches:data") is True
        assert cache.get("branches:data") is None
        assert cache.invalidate("branches:data") is False

    def test_invalidate_by_prefix_removes_all_and_only_matching(self, cache):
        for key in ("vendas:funil", "vendas:metas", "vendas-extra", "pex:bonus"):
            cache.set(key, key)
        assert cache.invalidate_by_prefix("vendas:") == 2
        assert cache.get("vendas:funil") is None
        assert cache.get("vendas:metas") is None
        assert cache.get("vendas-extra") == "vendas-extra"
        assert cache.get("pex:bonus") == "pex:bonus"

    def test_clear_returns_count(self, cache):
        cache.set("a:1", 1)
        cache.set("b:1", 2)
        assert cache.clear() == 2
        assert cache.stats()["size"] == 0


class TestStats:
    def test_hits_and_misses_accumulate(self, cache):
        cache.get("x:y")
        cache.set("x:y", 1)
        cache.get("x:y")
        cache.get("x:y")
        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["hitRate"] == "66.67%"

    def test_reset_stats(self, cache):
        cache.get("x:y")
        cache.reset_stats()
        assert cache.stats()["misses"] == 0
        assert cache.stats()["hitRate"] == "0%"


class TestGetOrFetch:
    def test_hit_does_not_call_producer(self, cache):
        cache.set("pex:pesos", "cached")
        calls = []
        assert cache.get_or_fetch("pex:pesos", lambda: calls.append(1)) == "cached"
        assert calls == []

    def test_miss_populates_cache(self, cache):
        assert cache.get_or_fetch("pex:pesos", lambda: [["h"], ["r"]], 30) == [["h"], ["r"]]
        assert cache.get("pex:pesos") == [["h"], ["r"]]

    def test_concurrent_callers_share_one_fetch(self, cache):
        calls = []

        def fetch_a():
            calls.append(1)
            eventlet.sleep(0.2)
            return {"rows": 42}

        pool = eventlet.GreenPool()
        threads = [pool.spawn(cache.get_or_fetch, "x", fetch_a, 60) for _ in range(5)]
        results = [gt.wait() for gt in threads]

        assert len(calls) == 1
        assert all(r == {"rows": 42} for r in results)
        assert all(r is results[0] for r in results)
        stats = cache.stats()
        assert stats["deduplicated"] == 4
        assert stats["pending"] == 0

    def test_failure_reaches_every_waiter_and_is_not_cached(self, cache):
        calls = []

        def fetch_fail():
            calls.append(1)
            eventlet.sleep(0.05)
            raise RuntimeError("quota exceeded")

        def attempt():
            try:
                cache.get_or_fetch("x", fetch_fail, 60)
            except RuntimeError as e:
                return str(e)
            return "no error"

        pool = eventlet.GreenPool()
        threads = [pool.spawn(attempt) for _ in range(3)]
        assert [gt.wait() for gt in threads] == ["quota exceeded"] * 3
        assert len(calls) == 1
        assert cache.get("x") is None
        assert cache.stats()["pending"] == 0

    def test_fetch_after_failure_runs_again(self, cache):
        def fetch_fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_fetch("x", fetch_fail, 60)
        assert cache.get("x") is None

        calls = []

        def fetch_ok():
            calls.append(1)
            return "ok"

        assert cache.get_or_fetch("x", fetch_ok, 60) == "ok"
        assert calls == [1]

    def test_different_keys_fetch_independently(self, cache):
        calls = []

        def producer(tag):
            def run():
                calls.append(tag)
                eventlet.sleep(0.01)
                return tag
            return run

        pool = eventlet.GreenPool()
        a = pool.spawn(cache.get_or_fetch, "vendas:funil", producer("funil"), 60)
        b = pool.spawn(cache.get_or_fetch, "vendas:metas", producer("metas"), 60)
        assert (a.wait(), b.wait()) == ("funil", "metas")
        assert sorted(calls) == ["funil", "metas"]

    def test_expired_entry_is_refetched(self, timed_cache, clock):
        calls = []

        def producer():
            calls.append(1)
            return len(calls)

        assert timed_cache.get_or_fetch("k:v", producer, 10) == 1
        clock.advance(5)
        assert timed_cache.get_or_fetch("k:v", producer, 10) == 1
        clock.advance(6)
        assert timed_cache.get_or_fetch("k:v", producer, 10) == 2
