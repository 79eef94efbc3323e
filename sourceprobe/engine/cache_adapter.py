"""Cache Adapter - Async two-tier facade used by the orchestrator

L1 is the in-process ProbeCache. L2 is an optional shared store (Redis)
whose client is synchronous, so it is called through asyncio.to_thread.
L2 failures are logged and ignored; a check never fails because of them.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sourceprobe.core.exceptions import CacheException
from sourceprobe.core.logging import logger

from .cache import CacheKey, ProbeCache
from .result import ProbeResult


class ProbeStore(Protocol):
    """공유 저장소 인터페이스 (RedisProbeStore 등)"""

    def get(self, key: CacheKey) -> Optional[ProbeResult]:
        ...

    def set(self, key: CacheKey, result: ProbeResult, ttl: float) -> bool:
        ...

    def delete(self, key: CacheKey) -> bool:
        ...

    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        ...


class ProbeCacheAdapter:
    """2단계 캐시 어댑터

    Usage:
        adapter = ProbeCacheAdapter(ProbeCache(), store=RedisProbeStore())
        result = await adapter.get(key)
        await adapter.set(key, result)
    """

    def __init__(
        self,
        cache: Optional[ProbeCache] = None,
        store: Optional[ProbeStore] = None,
        store_timeout: float = 0.5,
    ):
        """
        Args:
            cache: 메모리 캐시 (없으면 설정 기반으로 생성)
            store: 공유 저장소 (없으면 메모리 캐시만 사용)
            store_timeout: 저장소 호출 타임아웃 (초)
        """
        self.cache = cache if cache is not None else ProbeCache()
        self.store = store
        self.store_timeout = store_timeout
        self.store_hits = 0
        self.store_errors = 0

    async def get(self, key: CacheKey) -> Optional[ProbeResult]:
        """캐시 조회 (L1 → L2)

        L2 히트는 남은 TTL만큼 L1에 다시 채웁니다. TTL이 지난 L2 결과는 미스입니다.

        Returns:
            ProbeResult 또는 None
        """
        result, hit = self.cache.get(key)
        if hit:
            return result
        if self.store is None:
            return None

        try:
            stored = await asyncio.wait_for(asyncio.to_thread(self.store.get, key), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store get timeout: {key.source_id}/{key.level.label}")
            return None
        except CacheException as e:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store get failed: {e.error_code}: {e.message}")
            return None
        except Exception as e:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store get failed: {type(e).__name__}: {e}")
            return None

        if stored is None:
            return None

        remaining = self._remaining_ttl(key, stored)
        if remaining <= 0:
            return None

        self.store_hits += 1
        self.cache.set(key, stored, ttl=remaining)
        logger.debug(f"[CACHE] Store hit: {key.source_id}/{key.level.label}, remaining TTL {remaining:.0f}s")
        return stored

    async def set(self, key: CacheKey, result: ProbeResult) -> None:
        """캐시 저장 (L1 + L2, TTL은 레벨/상태 정책으로 계산)"""
        ttl = self.cache.ttl_policy.ttl_for(key, result)
        self.cache.set(key, result, ttl=ttl)
        if self.store is None or ttl <= 0:
            return

        try:
            await asyncio.wait_for(asyncio.to_thread(self.store.set, key, result, ttl), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store set timeout: {key.source_id}/{key.level.label}")
        except CacheException as e:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store set failed: {e.error_code}: {e.message}")
        except Exception as e:
            self.store_errors += 1
            logger.warning(f"[CACHE] Store set failed: {type(e).__name__}: {e}")

    async def evict(self, key: CacheKey) -> bool:
        removed = self.cache.evict(key)
        if self.store is not None:
            try:
                removed = await asyncio.to_thread(self.store.delete, key) or removed
            except Exception as e:
                logger.warning(f"[CACHE] Store delete failed: {type(e).__name__}: {e}")
        return removed

    def purge_expired(self) -> int:
        """L1 만료 엔트리 정리 (L2는 Redis TTL이 담당)"""
        return self.cache.purge_expired()

    def clear(self) -> None:
        """L1 비우기 (공유 저장소는 다른 프로세스도 사용하므로 유지)"""
        self.cache.clear()

    async def store_healthy(self) -> Optional[bool]:
        """공유 저장소 상태 (없으면 None)"""
        if self.store is None:
            return None
        try:
            return bool(await asyncio.wait_for(asyncio.to_thread(self.store.health_check), timeout=self.store_timeout))
        except Exception as e:
            logger.warning(f"[CACHE] Store health check failed: {type(e).__name__}: {e}")
            return False

    async def close(self) -> None:
        """공유 저장소 연결 정리 (L1은 유지)"""
        if self.store is None:
            return
        try:
            await asyncio.to_thread(self.store.close)
        except Exception as e:
            logger.warning(f"[CACHE] Store close failed: {type(e).__name__}: {e}")

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self.cache),
            "max_entries": self.cache.max_entries,
            "hits": self.cache.hits,
            "misses": self.cache.misses,
            "evictions": self.cache.evictions,
            "store_enabled": self.store is not None,
            "store_hits": self.store_hits,
            "store_errors": self.store_errors,
        }

    def _remaining_ttl(self, key: CacheKey, result: ProbeResult) -> float:
        ttl = self.cache.ttl_policy.ttl_for(key, result)
        checked_at = result.checked_at
        if checked_at.tzinfo is None:
            checked_at = checked_at.replace(tzinfo=timezone.utc)
        age = (datetime.now(timezone.utc) - checked_at).total_seconds()
        return ttl - max(0.0, age)
