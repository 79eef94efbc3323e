"""Source Check Orchestrator - Main Engine Entry Point

Coordinates one availability check over many sources:
1. Validation (whole call rejected on bad input)
2. Cache lookup per source
3. Bounded-concurrency probing of cache misses under an outer deadline
4. Cache write-back, progress notification, scoring and aggregation

Sources that could not be probed before the deadline or cancellation are
reported as timeout results. Unexpected engine failures degrade to an
"available but unchecked" result list instead of failing the caller.
"""

import asyncio
import inspect
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from time import monotonic
from typing import Any, Optional

from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import EngineInitializationException, OrchestratorTimeoutException
from sourceprobe.core.logging import logger, sanitize_for_log
from sourceprobe.probing.content_matcher import ContentMatcher
from sourceprobe.probing.http_client import HttpClient
from sourceprobe.probing.prober import Prober

from .budget import BudgetConfig, BudgetManager
from .cache import CacheKey
from .cache_adapter import ProbeCacheAdapter
from .models import (
    AggregatedSourceResult,
    CheckOptions,
    ProgressEvent,
    ProgressSink,
    SourceDescriptor,
    validate_sources,
)
from .result import ProbeLevel, ProbeResult, ProbeStatus
from .scorer import RANK_FUNCTIONAL, UNCHECKED_LABEL, UNCHECKED_SCORE, ReliabilityTracker, Scorer
from .selector import select_sources
from .strategy import ProbeStrategy


@dataclass
class _InFlightProbe:
    """진행 중인 프로브 (같은 캐시 키를 요청한 검사들이 공유)"""

    task: "asyncio.Task[ProbeResult]"
    waiters: int = 0


@dataclass
class _Outcome:
    result: ProbeResult
    from_cache: bool = False
    fresh: bool = False


class SourceCheckOrchestrator:
    """소스 가용성 검사 오케스트레이터

    인스턴스마다 캐시, 신뢰도 이력, 통계를 따로 가집니다 (전역 상태 없음).

    Usage:
        orchestrator = SourceCheckOrchestrator(http_client=ProbeHttpClient())
        results = await orchestrator.check(sources, CheckOptions(level=ProbeLevel.CONTENT, keyword="MIMK-186"))
        selected = select_sources(results, SelectOptions(min_reliability=0.3))
    """

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        prober: Optional[Prober] = None,
        cache: Optional[ProbeCacheAdapter] = None,
        scorer: Optional[Scorer] = None,
        reliability: Optional[ReliabilityTracker] = None,
        content_matcher: Optional[ContentMatcher] = None,
        strategy: Optional[ProbeStrategy] = None,
    ):
        """
        Args:
            http_client: HTTP 클라이언트 (prober를 주지 않은 경우 필수)
            prober: 프로브 실행자
            cache: 캐시 어댑터 (기본값: 메모리 캐시만)
            scorer: 점수 계산기
            reliability: 신뢰도 이력
            content_matcher: CONTENT/DEEP 매처 (기본값: KeywordContentMatcher)
            strategy: 프로브 전략

        Raises:
            ValueError: http_client와 prober가 모두 None인 경우
        """
        if prober is None and http_client is None:
            raise ValueError("http_client must not be None when prober is not given")

        self.http_client = http_client
        self.strategy = strategy or ProbeStrategy()
        self.prober = prober or Prober(http_client, content_matcher=content_matcher, strategy=self.strategy)
        self.scorer = scorer or Scorer.from_settings()
        self.reliability = reliability or ReliabilityTracker()

        # 캐시 초기화 실패 시 검사는 "검사 불가" 폴백으로 동작
        self._init_error: Optional[EngineInitializationException] = None
        self.cache: Optional[ProbeCacheAdapter] = cache
        if self.cache is None:
            try:
                self.cache = ProbeCacheAdapter()
            except Exception as e:
                self._init_error = EngineInitializationException("cache", f"{type(e).__name__}: {e}")
                logger.error(f"[ORCHESTRATOR] {self._init_error.error_code}: {self._init_error.message}")

        self._inflight: dict[CacheKey, _InFlightProbe] = {}
        self._active_probes = 0

        self._total_checks = 0
        self._successful_checks = 0
        self._failed_checks = 0
        self._cache_hits = 0
        self._backend_checks = 0
        self._response_time_total = 0.0
        self._response_time_count = 0

    async def check(
        self,
        sources: Sequence[SourceDescriptor],
        options: Optional[CheckOptions] = None,
    ) -> list[AggregatedSourceResult]:
        """소스 목록 검사

        Args:
            sources: 검색 소스 목록
            options: 검사 옵션

        Returns:
            list[AggregatedSourceResult]: 입력 소스마다 1개 (정렬은 select_sources 담당)

        Raises:
            InvalidSourceException: 소스 정의 오류 (프로브 시작 전)
            InvalidOptionsException: 옵션 오류 (프로브 시작 전)
        """
        opts = (options or CheckOptions()).validate()
        validated = validate_sources(sources)
        if not validated:
            return []

        logger.info(
            f"[ORCHESTRATOR] Check started: sources={len(validated)}, level={opts.level.label}, "
            f"keyword='{sanitize_for_log(opts.keyword)}', concurrency={opts.max_concurrency}"
        )

        if self._init_error is not None:
            return self._fallback(validated, opts, f"Engine unavailable ({self._init_error.message})")

        try:
            return await self._run_check(validated, opts)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[ORCHESTRATOR] Check failed: {type(e).__name__}: {e}", exc_info=True)
            return self._fallback(validated, opts, f"Check failed: {type(e).__name__}")

    async def check_and_select(
        self,
        sources: Sequence[SourceDescriptor],
        options: Optional[CheckOptions] = None,
    ) -> list[AggregatedSourceResult]:
        """검사 후 옵션의 선택 조건으로 필터링/정렬"""
        opts = options or CheckOptions()
        results = await self.check(sources, opts)
        return select_sources(results, opts.to_select_options())

    async def warmup(
        self,
        sources: Sequence[SourceDescriptor],
        level: ProbeLevel = ProbeLevel.FUNCTIONAL,
    ) -> list[AggregatedSourceResult]:
        """기본 키워드로 검사하여 캐시 미리 채우기 (캐시 조회 없이 항상 새로 검사)"""
        opts = CheckOptions(level=level, keyword=settings.probe_default_keyword, use_cache=False)
        results = await self.check(sources, opts)
        available = sum(1 for r in results if r.available)
        logger.info(f"[ORCHESTRATOR] Warmup done: {available}/{len(results)} available")
        return results

    async def _run_check(
        self,
        sources: list[SourceDescriptor],
        opts: CheckOptions,
    ) -> list[AggregatedSourceResult]:
        budget = BudgetManager(
            BudgetConfig(
                total_budget=(opts.deadline_ms or settings.check_total_budget_ms) / 1000,
                request_timeout=opts.timeout_ms / 1000,
                min_remaining=settings.check_min_remaining_ms / 1000,
            )
        )
        budget.start()

        total = len(sources)
        outcomes: dict[str, _Outcome] = {}
        pending: list[tuple[SourceDescriptor, CacheKey]] = []

        # 1. 캐시 조회
        for source in sources:
            key = CacheKey.for_probe(source.id, opts.level, opts.keyword)
            if opts.use_cache:
                cached = await self.cache.get(key)
                if cached is not None:
                    outcomes[source.id] = _Outcome(cached, from_cache=True)
                    await self._emit(opts.progress_sink, ProgressEvent(source.id, cached, len(outcomes), total, True))
                    continue
            pending.append((source, key))

        budget.checkpoint("cache_resolved")
        logger.debug(f"[ORCHESTRATOR] Cache resolved: hits={len(outcomes)}, pending={len(pending)}")

        # 2. 워커 풀로 프로브
        if pending:
            await self._probe_pending(pending, opts, budget, outcomes, total)
        budget.checkpoint("probes_done")

        # 3. 점수 계산 및 병합 (입력 순서 유지)
        aggregated = [self._aggregate(source, outcomes[source.id]) for source in sources]
        self._record_stats(aggregated, outcomes)

        report = budget.get_report()
        logger.info(
            f"[ORCHESTRATOR] Check done: available={sum(1 for a in aggregated if a.available)}/{total}, "
            f"elapsed={report['elapsed'] * 1000:.0f}ms"
        )
        return aggregated

    async def _probe_pending(
        self,
        pending: list[tuple[SourceDescriptor, CacheKey]],
        opts: CheckOptions,
        budget: BudgetManager,
        outcomes: dict[str, _Outcome],
        total: int,
    ) -> None:
        semaphore = asyncio.Semaphore(opts.max_concurrency)
        tasks: dict[asyncio.Task, SourceDescriptor] = {
            asyncio.create_task(self._probe_with_limit(source, key, opts, budget, semaphore)): source
            for source, key in pending
        }
        cancel_waiter = asyncio.create_task(opts.cancel_event.wait()) if opts.cancel_event is not None else None
        remaining_tasks = set(tasks)
        cancelled = False

        try:
            while remaining_tasks:
                timeout = budget.remaining()
                if timeout <= 0:
                    break
                wait_set = remaining_tasks | {cancel_waiter} if cancel_waiter is not None else remaining_tasks
                done, _ = await asyncio.wait(wait_set, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is cancel_waiter:
                        continue
                    remaining_tasks.discard(task)
                    source = tasks[task]
                    outcomes[source.id] = self._collect(task, source, opts)
                    await self._emit(
                        opts.progress_sink,
                        ProgressEvent(source.id, outcomes[source.id].result, len(outcomes), total),
                    )

                if cancel_waiter is not None and cancel_waiter in done:
                    cancelled = True
                    break
        finally:
            for task in remaining_tasks:
                task.cancel()
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            leftovers = list(remaining_tasks) + ([cancel_waiter] if cancel_waiter is not None else [])
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

        if remaining_tasks:
            reason = "Check cancelled before probe completed" if cancelled else "Check deadline exceeded"
            if not cancelled:
                timeout_error = OrchestratorTimeoutException(budget.config.total_budget * 1000, len(remaining_tasks))
                logger.warning(f"[ORCHESTRATOR] {timeout_error}")
            for task in remaining_tasks:
                source = tasks[task]
                outcomes[source.id] = _Outcome(ProbeResult.timeout(source.id, opts.level, error=reason))

    async def _probe_with_limit(
        self,
        source: SourceDescriptor,
        key: CacheKey,
        opts: CheckOptions,
        budget: BudgetManager,
        semaphore: asyncio.Semaphore,
    ) -> ProbeResult:
        async with semaphore:
            if opts.cancel_event is not None and opts.cancel_event.is_set():
                return ProbeResult.timeout(source.id, opts.level, error="Check cancelled before probe started")
            if not budget.can_start_probe():
                return ProbeResult.timeout(source.id, opts.level, error="Check deadline exceeded before probe started")
            return await self._probe_deduped(source, key, opts, budget)

    async def _probe_deduped(
        self,
        source: SourceDescriptor,
        key: CacheKey,
        opts: CheckOptions,
        budget: BudgetManager,
    ) -> ProbeResult:
        """같은 캐시 키의 프로브가 진행 중이면 그 결과를 기다림"""
        entry = self._inflight.get(key)
        if entry is None:
            # 공유 프로브는 요청 타임아웃만 따르고 호출자 deadline은 각자의 대기에서 적용
            request_count = self.strategy.request_count(opts.level, len(self.prober.synthetic_keywords))
            probe_timeout = budget.get_probe_timeout(request_count)
            task = asyncio.create_task(self._probe_and_store(source, key, opts, probe_timeout))
            entry = _InFlightProbe(task=task)
            self._inflight[key] = entry
            task.add_done_callback(lambda _t, k=key, e=entry: self._release_inflight(k, e))
        else:
            logger.debug(f"[ORCHESTRATOR] Joining in-flight probe: {source.id}/{key.level.label}")

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                # 기다리는 검사가 없으면 프로브 취소 후 정리될 때까지 대기
                self._release_inflight(key, entry)
                entry.task.cancel()
                await asyncio.gather(entry.task, return_exceptions=True)

    def _release_inflight(self, key: CacheKey, entry: _InFlightProbe) -> None:
        if self._inflight.get(key) is entry:
            del self._inflight[key]

    async def _probe_and_store(
        self,
        source: SourceDescriptor,
        key: CacheKey,
        opts: CheckOptions,
        probe_timeout: float,
    ) -> ProbeResult:
        request_timeout = opts.timeout_ms / 1000

        self._active_probes += 1
        started = monotonic()
        try:
            result = await asyncio.wait_for(
                self.prober.probe(source, opts.level, opts.keyword, request_timeout),
                timeout=probe_timeout,
            )
        except asyncio.TimeoutError:
            elapsed_ms = (monotonic() - started) * 1000
            logger.info(f"[ORCHESTRATOR] Probe timeout: {source.id} after {elapsed_ms:.0f}ms")
            result = ProbeResult.timeout(
                source.id,
                opts.level,
                error=f"Probe exceeded {probe_timeout * 1000:.0f}ms",
                response_time_ms=round(elapsed_ms, 1),
            )
        finally:
            self._active_probes -= 1

        self._backend_checks += 1
        card = self.scorer.score(result)
        self.reliability.record(source.id, card.final_score)
        await self.cache.set(key, result)
        return result

    def _collect(self, task: asyncio.Task, source: SourceDescriptor, opts: CheckOptions) -> _Outcome:
        if task.cancelled():
            return _Outcome(ProbeResult.timeout(source.id, opts.level, error="Probe cancelled"))
        error = task.exception()
        if error is not None:
            logger.error(f"[ORCHESTRATOR] Probe task failed: {source.id}: {type(error).__name__}: {error}")
            return _Outcome(ProbeResult.unchecked(source.id, opts.level, f"Probe failed: {type(error).__name__}"))
        return _Outcome(task.result(), fresh=True)

    def _aggregate(self, source: SourceDescriptor, outcome: _Outcome) -> AggregatedSourceResult:
        result = outcome.result
        card = self.scorer.score(result)
        if result.status == ProbeStatus.UNKNOWN:
            reliability = UNCHECKED_SCORE
        else:
            reliability = self.reliability.current(source.id, fallback=card.final_score)
        return AggregatedSourceResult(
            source=source,
            result=result,
            final_score=card.final_score,
            reliability=reliability,
            availability_rank=card.rank,
            availability_level=card.level,
            from_cache=outcome.from_cache,
        )

    def _fallback(
        self,
        sources: list[SourceDescriptor],
        opts: CheckOptions,
        reason: str,
    ) -> list[AggregatedSourceResult]:
        """모든 소스를 "가용하지만 검사하지 못함"으로 반환"""
        logger.warning(f"[ORCHESTRATOR] Falling back to unchecked results: {reason}")
        return [
            AggregatedSourceResult(
                source=source,
                result=ProbeResult.unchecked(source.id, opts.level, reason),
                final_score=UNCHECKED_SCORE,
                reliability=UNCHECKED_SCORE,
                availability_rank=RANK_FUNCTIONAL,
                availability_level=UNCHECKED_LABEL,
            )
            for source in sources
        ]

    @staticmethod
    async def _emit(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
        if sink is None:
            return
        try:
            returned = sink(event)
            if inspect.isawaitable(returned):
                await returned
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ORCHESTRATOR] Progress sink failed: {type(e).__name__}: {e}")

    def _record_stats(self, aggregated: list[AggregatedSourceResult], outcomes: dict[str, _Outcome]) -> None:
        for item in aggregated:
            outcome = outcomes[item.source_id]
            self._total_checks += 1
            if outcome.from_cache:
                self._cache_hits += 1
            if item.available:
                self._successful_checks += 1
            else:
                self._failed_checks += 1
            if outcome.fresh and item.available and item.response_time_ms is not None:
                self._response_time_total += item.response_time_ms
                self._response_time_count += 1

    def stats(self) -> dict[str, Any]:
        """검사 통계

        Returns:
            dict: total_checks, successful_checks, failed_checks, cache_hits, backend_checks,
                average_response_time (ms), cache_hit_rate, cache_size, tracked_sources
        """
        average = self._response_time_total / self._response_time_count if self._response_time_count else 0.0
        hit_rate = self._cache_hits / self._total_checks if self._total_checks else 0.0
        return {
            "total_checks": self._total_checks,
            "successful_checks": self._successful_checks,
            "failed_checks": self._failed_checks,
            "cache_hits": self._cache_hits,
            "backend_checks": self._backend_checks,
            "average_response_time": round(average, 1),
            "cache_hit_rate": round(hit_rate, 4),
            "cache_size": len(self.cache.cache) if self.cache is not None else 0,
            "tracked_sources": len(self.reliability),
        }

    async def health(self) -> dict[str, Any]:
        """엔진 상태

        Returns:
            dict: status (ok | degraded | error), cache, active_probes, in_flight, store_healthy
        """
        if self.cache is None:
            return {
                "status": "error",
                "error": self._init_error.message if self._init_error else None,
                "cache": {},
                "active_probes": self._active_probes,
                "in_flight": len(self._inflight),
                "store_healthy": None,
            }

        store_healthy = await self.cache.store_healthy()
        return {
            "status": "degraded" if store_healthy is False else "ok",
            "cache": self.cache.stats(),
            "active_probes": self._active_probes,
            "in_flight": len(self._inflight),
            "store_healthy": store_healthy,
        }

    def purge_expired(self) -> int:
        """만료된 캐시 엔트리 정리"""
        if self.cache is None:
            return 0
        purged = self.cache.purge_expired()
        if purged:
            logger.info(f"[ORCHESTRATOR] Purged {purged} expired cache entries")
        return purged

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()
        logger.info("[ORCHESTRATOR] Cache cleared")

    async def close(self) -> None:
        """진행 중인 프로브 취소 및 HTTP 클라이언트, 공유 저장소 정리"""
        tasks = [entry.task for entry in self._inflight.values()]
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.http_client is not None:
            await self.http_client.close()
        if self.cache is not None:
            await self.cache.close()


def summarize(results: Sequence[AggregatedSourceResult], keyword: str) -> dict[str, Any]:
    """검사 결과 요약

    Returns:
        dict: total, available, unavailable, timeout, error, average_response_time, keyword, timestamp
    """
    available = [r for r in results if r.available]
    response_times = [r.response_time_ms for r in available if r.response_time_ms is not None]
    return {
        "total": len(results),
        "available": len(available),
        "unavailable": len(results) - len(available),
        "timeout": sum(1 for r in results if r.status == ProbeStatus.TIMEOUT),
        "error": sum(1 for r in results if r.status in (ProbeStatus.ERROR, ProbeStatus.OFFLINE)),
        "average_response_time": round(sum(response_times) / len(response_times), 1) if response_times else 0.0,
        "keyword": keyword,
        "timestamp": datetime.now(timezone.utc),
    }
