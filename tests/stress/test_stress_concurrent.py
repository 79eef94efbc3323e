"""스트레스 테스트 - 워커 풀 동시성 상한 검증

가짜 HTTP 지연으로 벽시계 시간을 측정하므로 허용 오차를 넉넉히 둡니다.
"""

from __future__ import annotations

from time import monotonic

import pytest

from conftest import FakeContentMatcher, FakeHttpClient, FakeRoute, SEARCH_BODY, make_source
from sourceprobe.engine.cache import ProbeCache
from sourceprobe.engine.cache_adapter import ProbeCacheAdapter
from sourceprobe.engine.models import CheckOptions
from sourceprobe.engine.orchestrator import SourceCheckOrchestrator
from sourceprobe.engine.result import ProbeLevel


def _orchestrator(http: FakeHttpClient) -> SourceCheckOrchestrator:
    return SourceCheckOrchestrator(
        http_client=http,
        content_matcher=FakeContentMatcher(),
        cache=ProbeCacheAdapter(ProbeCache(max_entries=1000)),
    )


@pytest.mark.asyncio
async def test_max_concurrency_bounds_wall_clock_time():
    """9개 소스 × 100ms, 동시성 3 → 약 300ms (900ms도 100ms도 아님)"""
    http = FakeHttpClient(default=FakeRoute(body=SEARCH_BODY, delay=0.1))
    orchestrator = _orchestrator(http)
    sources = [make_source(f"s{i}") for i in range(9)]

    started = monotonic()
    results = await orchestrator.check(sources, CheckOptions(level=ProbeLevel.BASIC, max_concurrency=3))
    elapsed = monotonic() - started

    assert all(r.available for r in results)
    assert http.max_in_flight == 3
    assert 0.28 <= elapsed < 0.6


@pytest.mark.asyncio
async def test_concurrency_bound_holds_across_escalation():
    http = FakeHttpClient(default=FakeRoute(body=SEARCH_BODY, delay=0.02))
    orchestrator = _orchestrator(http)
    sources = [make_source(f"s{i}") for i in range(20)]

    results = await orchestrator.check(sources, CheckOptions(level=ProbeLevel.DEEP, max_concurrency=4))

    assert len(results) == 20
    assert http.max_in_flight <= 4
    assert len(http.calls) == 20 * 5


@pytest.mark.asyncio
async def test_many_sources_against_deadline_never_drop_results():
    http = FakeHttpClient(default=FakeRoute(body=SEARCH_BODY, delay=0.05))
    orchestrator = _orchestrator(http)
    sources = [make_source(f"s{i}") for i in range(50)]

    started = monotonic()
    results = await orchestrator.check(
        sources, CheckOptions(level=ProbeLevel.BASIC, max_concurrency=2, deadline_ms=300)
    )
    elapsed = monotonic() - started

    assert elapsed < 1.0
    assert [r.source_id for r in results] == [s.id for s in sources]
    assert any(r.available for r in results)
    assert any(r.status.value == "timeout" for r in results)
    assert http.in_flight == 0
