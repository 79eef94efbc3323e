"""Probe Cache - TTL + capacity-bounded in-memory store of probe results

Entries are keyed by (source_id, level, keyword_bucket). Expired entries are
misses and are removed on read. When the cache is full, the entry with the
oldest last access is evicted (LRU by access, not by insertion).
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from time import monotonic
from typing import Callable, Optional

from sourceprobe.core.config import settings
from sourceprobe.core.logging import logger
from sourceprobe.utils.url_utils import normalize_keyword

from .result import ProbeLevel, ProbeResult, ProbeStatus

NO_KEYWORD_BUCKET = "none"

# 키워드와 무관한 레벨 (도메인/검색 URL 자체의 가용성)
_KEYWORD_INDEPENDENT_LEVELS = (ProbeLevel.BASIC, ProbeLevel.FUNCTIONAL)


@dataclass(frozen=True)
class CacheKey:
    """캐시 키"""

    source_id: str
    level: ProbeLevel
    keyword_bucket: str = NO_KEYWORD_BUCKET

    @classmethod
    def for_probe(cls, source_id: str, level: ProbeLevel, keyword: str) -> "CacheKey":
        """레벨에 맞는 키워드 버킷으로 키 생성

        BASIC/FUNCTIONAL은 "none", CONTENT/DEEP은 정규화된 키워드를 버킷으로 사용합니다.
        """
        if level in _KEYWORD_INDEPENDENT_LEVELS:
            return cls(source_id, level, NO_KEYWORD_BUCKET)
        return cls(source_id, level, normalize_keyword(keyword) or NO_KEYWORD_BUCKET)


@dataclass
class CacheEntry:
    """캐시 엔트리 (ProbeCache 내부 전용)"""

    result: ProbeResult
    expires_at: float
    last_accessed: float


@dataclass(frozen=True)
class TtlPolicy:
    """레벨별 TTL × 상태별 배수"""

    level_ttl: dict[ProbeLevel, float]
    status_multiplier: dict[ProbeStatus, float]

    @classmethod
    def from_settings(cls) -> "TtlPolicy":
        return cls(
            level_ttl={
                ProbeLevel.BASIC: settings.cache_ttl_basic_s,
                ProbeLevel.FUNCTIONAL: settings.cache_ttl_functional_s,
                ProbeLevel.CONTENT: settings.cache_ttl_content_s,
                ProbeLevel.DEEP: settings.cache_ttl_deep_s,
            },
            status_multiplier={
                ProbeStatus.ONLINE: settings.cache_ttl_multiplier_online,
                ProbeStatus.OFFLINE: settings.cache_ttl_multiplier_offline,
                ProbeStatus.TIMEOUT: settings.cache_ttl_multiplier_timeout,
                ProbeStatus.ERROR: settings.cache_ttl_multiplier_error,
            },
        )

    def ttl_for(self, key: CacheKey, result: ProbeResult) -> float:
        """키의 레벨과 결과 상태로 TTL(초) 계산"""
        base = self.level_ttl.get(key.level, settings.cache_ttl_functional_s)
        return base * self.status_multiplier.get(result.status, 1.0)


class ProbeCache:
    """프로브 결과 캐시 (thread-safe)

    모든 접근은 단일 lock으로 직렬화됩니다.

    Usage:
        cache = ProbeCache(max_entries=1000)
        key = CacheKey.for_probe("javbus", ProbeLevel.CONTENT, "MIMK-186")

        cache.set(key, result, ttl=120)
        result, hit = cache.get(key)
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl_policy: Optional[TtlPolicy] = None,
        clock: Callable[[], float] = monotonic,
    ):
        """
        Args:
            max_entries: 최대 엔트리 수 (기본값: settings.cache_max_entries)
            ttl_policy: TTL 정책 (기본값: 설정 기반)
            clock: 단조 시계 (테스트에서 주입)

        Raises:
            ValueError: max_entries가 양수가 아닌 경우
        """
        max_entries = settings.cache_max_entries if max_entries is None else max_entries
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.max_entries = max_entries
        self.ttl_policy = ttl_policy or TtlPolicy.from_settings()
        self._clock = clock
        self._lock = threading.Lock()
        # 순서 = last_accessed 오름차순 (맨 앞이 가장 오래 접근되지 않은 엔트리)
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: CacheKey) -> tuple[Optional[ProbeResult], bool]:
        """캐시 조회

        히트 시 last_accessed를 갱신하고, 만료된 엔트리는 제거 후 미스로 처리합니다.

        Args:
            key: 캐시 키

        Returns:
            (ProbeResult | None, hit 여부)
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None, False

            now = self._clock()
            if now > entry.expires_at:
                del self._entries[key]
                self.misses += 1
                logger.debug(f"[CACHE] Expired: {key.source_id}/{key.level.label}/{key.keyword_bucket}")
                return None, False

            entry.last_accessed = now
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.result, True

    def set(self, key: CacheKey, result: ProbeResult, ttl: Optional[float] = None) -> None:
        """캐시 저장 (기존 엔트리는 덮어쓰기)

        Args:
            key: 캐시 키
            result: 프로브 결과
            ttl: TTL (초). None이면 TTL 정책으로 계산
        """
        if ttl is None:
            ttl = self.ttl_policy.ttl_for(key, result)
        if ttl <= 0:
            self.evict(key)
            return

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                self._make_room(now)

            self._entries[key] = CacheEntry(result=result, expires_at=now + ttl, last_accessed=now)

    def evict(self, key: CacheKey) -> bool:
        """엔트리 삭제

        Returns:
            bool: 삭제 여부
        """
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """만료된 엔트리 일괄 삭제

        Returns:
            int: 삭제된 엔트리 수
        """
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def peek(self, key: CacheKey) -> tuple[Optional[ProbeResult], bool]:
        """last_accessed를 갱신하지 않는 조회 (만료 여부는 반영)"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None, False
            return entry.result, True

    def _make_room(self, now: float) -> None:
        # 만료된 엔트리를 먼저 비우고, 그래도 가득 차 있으면 LRU 엔트리 제거
        if self._purge_expired_locked(now) > 0 and len(self._entries) < self.max_entries:
            return
        oldest_key, _ = self._entries.popitem(last=False)
        self.evictions += 1
        logger.debug(f"[CACHE] Evicted LRU entry: {oldest_key.source_id}/{oldest_key.level.label}")

    def _purge_expired_locked(self, now: float) -> int:
        expired = [k for k, entry in self._entries.items() if now > entry.expires_at]
        for k in expired:
            del self._entries[k]
        return len(expired)
