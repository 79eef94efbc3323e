"""ProbeCache 테스트 (TTL, LRU-by-access, TTL 정책)"""

from __future__ import annotations

import threading

import pytest

from sourceprobe.engine.cache import CacheKey, ProbeCache, TtlPolicy
from sourceprobe.engine.result import ProbeLevel, ProbeResult, ProbeStatus


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _result(source_id: str, status: ProbeStatus = ProbeStatus.ONLINE) -> ProbeResult:
    return ProbeResult(
        source_id=source_id,
        level=ProbeLevel.BASIC,
        available=status == ProbeStatus.ONLINE,
        status=status,
        basic_score=1.0,
    )


def _key(source_id: str, level: ProbeLevel = ProbeLevel.BASIC) -> CacheKey:
    return CacheKey.for_probe(source_id, level, "kw")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_get_miss_then_hit(clock):
    cache = ProbeCache(max_entries=10, clock=clock)

    assert cache.get(_key("a")) == (None, False)
    cache.set(_key("a"), _result("a"), ttl=60)
    result, hit = cache.get(_key("a"))

    assert hit is True
    assert result.source_id == "a"
    assert cache.hits == 1
    assert cache.misses == 1


def test_expired_entry_is_miss_and_removed(clock):
    cache = ProbeCache(max_entries=10, clock=clock)
    cache.set(_key("a"), _result("a"), ttl=60)

    clock.advance(60)
    assert cache.get(_key("a"))[1] is True

    clock.advance(0.001)
    assert cache.get(_key("a")) == (None, False)
    assert len(cache) == 0


def test_lru_evicts_oldest_access_not_oldest_insert(clock):
    cache = ProbeCache(max_entries=3, clock=clock)
    for source_id in ("a", "b", "c"):
        cache.set(_key(source_id), _result(source_id), ttl=600)
        clock.advance(1)

    # a는 가장 먼저 넣었지만 최근에 접근됨 → b가 가장 오래 접근되지 않은 엔트리
    cache.get(_key("a"))
    clock.advance(1)
    cache.set(_key("d"), _result("d"), ttl=600)

    assert len(cache) == 3
    assert cache.peek(_key("b")) == (None, False)
    assert cache.peek(_key("a"))[1] is True
    assert cache.peek(_key("c"))[1] is True
    assert cache.peek(_key("d"))[1] is True
    assert cache.evictions == 1


def test_full_cache_prefers_purging_expired_entries(clock):
    cache = ProbeCache(max_entries=2, clock=clock)
    cache.set(_key("a"), _result("a"), ttl=600)
    cache.set(_key("short"), _result("short"), ttl=1)
    clock.advance(5)

    cache.set(_key("b"), _result("b"), ttl=600)

    assert cache.peek(_key("a"))[1] is True
    assert cache.peek(_key("b"))[1] is True
    assert cache.evictions == 0


def test_overwrite_refreshes_entry_without_eviction(clock):
    cache = ProbeCache(max_entries=2, clock=clock)
    cache.set(_key("a"), _result("a"), ttl=10)
    cache.set(_key("b"), _result("b"), ttl=10)
    clock.advance(8)

    cache.set(_key("a"), _result("a", ProbeStatus.ERROR), ttl=10)
    clock.advance(5)

    result, hit = cache.get(_key("a"))
    assert hit is True
    assert result.status == ProbeStatus.ERROR
    assert cache.get(_key("b")) == (None, False)
    assert cache.evictions == 0


def test_evict_and_zero_ttl(clock):
    cache = ProbeCache(max_entries=5, clock=clock)
    cache.set(_key("a"), _result("a"), ttl=60)

    assert cache.evict(_key("a")) is True
    assert cache.evict(_key("a")) is False

    cache.set(_key("b"), _result("b"), ttl=0)
    assert len(cache) == 0


def test_purge_expired_and_clear(clock):
    cache = ProbeCache(max_entries=5, clock=clock)
    cache.set(_key("a"), _result("a"), ttl=1)
    cache.set(_key("b"), _result("b"), ttl=100)
    clock.advance(2)

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_keyword_bucket_per_level():
    assert CacheKey.for_probe("a", ProbeLevel.BASIC, "ABC").keyword_bucket == "none"
    assert CacheKey.for_probe("a", ProbeLevel.FUNCTIONAL, "ABC").keyword_bucket == "none"
    assert CacheKey.for_probe("a", ProbeLevel.CONTENT, "  ABC  ").keyword_bucket == "abc"
    assert CacheKey.for_probe("a", ProbeLevel.DEEP, "abc") == CacheKey.for_probe("a", ProbeLevel.DEEP, "ABC")


def test_ttl_policy_level_and_status():
    policy = TtlPolicy(
        level_ttl={ProbeLevel.BASIC: 600, ProbeLevel.CONTENT: 120},
        status_multiplier={ProbeStatus.ONLINE: 1.0, ProbeStatus.ERROR: 0.2},
    )

    assert policy.ttl_for(_key("a"), _result("a")) == 600
    assert policy.ttl_for(_key("a"), _result("a", ProbeStatus.ERROR)) == pytest.approx(120)
    assert policy.ttl_for(_key("a", ProbeLevel.CONTENT), _result("a")) == 120


def test_set_without_ttl_uses_policy(clock):
    policy = TtlPolicy(level_ttl={ProbeLevel.BASIC: 10}, status_multiplier={ProbeStatus.TIMEOUT: 0.5})
    cache = ProbeCache(max_entries=5, ttl_policy=policy, clock=clock)
    cache.set(_key("a"), _result("a", ProbeStatus.TIMEOUT))

    clock.advance(5.5)
    assert cache.get(_key("a")) == (None, False)


def test_invalid_capacity():
    with pytest.raises(ValueError):
        ProbeCache(max_entries=0)


def test_concurrent_access_is_safe():
    cache = ProbeCache(max_entries=50)
    errors: list[Exception] = []

    def worker(offset: int) -> None:
        try:
            for i in range(200):
                key = _key(f"s{(offset + i) % 80}")
                cache.set(key, _result(key.source_id), ttl=60)
                cache.get(key)
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n * 7,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(cache) <= 50
