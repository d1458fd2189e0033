"""Tests for the result cache."""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from cra_payroll.calculators.types import ClaimAmounts, YtdSnapshot
from cra_payroll.providers.cache import ResultCache, cache_key
from cra_payroll.providers.config import CacheConfig


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    """The key covers every input that affects the result."""

    def test_same_event_same_key(self, make_event):
        assert cache_key(make_event()) == cache_key(make_event())

    def test_gross_changes_key(self, make_event):
        assert cache_key(make_event()) != cache_key(make_event(gross_pay=Decimal("2000.01")))

    def test_ytd_changes_key(self, make_event):
        changed = make_event(ytd=YtdSnapshot(cpp_contributed=Decimal("1")))
        assert cache_key(make_event()) != cache_key(changed)

    def test_claims_change_key(self, make_event):
        changed = make_event(claims=ClaimAmounts(federal_basic=Decimal("0")))
        assert cache_key(make_event()) != cache_key(changed)


class TestResultCache:
    """Tests for TTL expiry and bounded capacity."""

    @pytest.fixture
    def result(self, calculator, make_event):
        return calculator.calculate(make_event())

    def test_miss_then_hit(self, result):
        cache = ResultCache()
        assert cache.get("k") is None
        cache.put("k", result)
        assert cache.get("k") == result
        assert cache.hits == 1
        assert cache.misses == 1

    def test_expires_after_ttl(self, result):
        clock = FakeClock()
        cache = ResultCache(CacheConfig(ttl_seconds=600), clock=clock)
        cache.put("k", result)

        clock.now += 599
        assert cache.get("k") == result

        clock.now += 1
        assert cache.get("k") is None
        assert "k" not in cache

    def test_evicts_oldest_inserted_when_full(self, result):
        cache = ResultCache(CacheConfig(max_entries=2))
        cache.put("a", result)
        cache.put("b", result)
        # Reads do not refresh position
        cache.get("a")
        cache.put("c", result)

        assert "a" not in cache
        assert "b" in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_reinsert_moves_to_newest(self, result):
        cache = ResultCache(CacheConfig(max_entries=2))
        cache.put("a", result)
        cache.put("b", result)
        cache.put("a", result)
        cache.put("c", result)

        assert "a" in cache
        assert "b" not in cache

    def test_clear(self, result):
        cache = ResultCache()
        cache.put("a", result)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("kwargs", [{"max_entries": 0}, {"ttl_seconds": 0}])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            CacheConfig(**kwargs)


class TestConcurrentAccess:
    """The cache stays consistent under concurrent readers and writers."""

    THREADS = 8
    ROUNDS = 200
    MAX_ENTRIES = 10

    def test_threads_with_overlapping_keys(self, calculator, make_event):
        results = {
            f"k{i}": calculator.calculate(make_event(gross_pay=Decimal(1000 + i)))
            for i in range(self.THREADS * 5 + 20)
        }
        cache = ResultCache(CacheConfig(max_entries=self.MAX_ENTRIES, ttl_seconds=600))
        start = threading.Barrier(self.THREADS)

        def worker(offset: int) -> list[str]:
            wrong: list[str] = []
            keys = [f"k{i}" for i in range(offset * 5, offset * 5 + 20)]
            start.wait()
            for n in range(self.ROUNDS):
                key = keys[n % len(keys)]
                cache.put(key, results[key])
                other = keys[(n * 7) % len(keys)]
                found = cache.get(other)
                if found is not None and found != results[other]:
                    wrong.append(other)
                if len(cache) > self.MAX_ENTRIES:
                    wrong.append("over capacity")
            return wrong

        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            outcomes = list(pool.map(worker, range(self.THREADS)))

        assert all(not wrong for wrong in outcomes)
        assert len(cache) <= self.MAX_ENTRIES
        assert cache.hits + cache.misses == self.THREADS * self.ROUNDS
        survivors = [key for key in results if key in cache]
        assert 0 < len(survivors) <= self.MAX_ENTRIES
        for key in survivors:
            assert cache.get(key) == results[key]
