"""SourceCheckOrchestrator 테스트

- 외부 호출 없음 (FakeHttpClient)
- 캐시 / 워커 풀 / deadline / 취소 / 폴백 의미 검증
"""

from __future__ import annotations

import asyncio
from time import monotonic
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import FakeContentMatcher, FakeHttpClient, make_source
from sourceprobe.core.exceptions import InvalidOptionsException, InvalidSourceException
from sourceprobe.engine.cache import ProbeCache
from sourceprobe.engine.cache_adapter import ProbeCacheAdapter
from sourceprobe.engine.models import CheckOptions, SelectOptions, SourceDescriptor
from sourceprobe.engine.orchestrator import SourceCheckOrchestrator, summarize
from sourceprobe.engine.result import ProbeLevel, ProbeStatus
from sourceprobe.engine.selector import select_sources


def _orchestrator(http: FakeHttpClient, matcher: FakeContentMatcher | None = None) -> SourceCheckOrchestrator:
    return SourceCheckOrchestrator(
        http_client=http,
        content_matcher=matcher or FakeContentMatcher(),
        cache=ProbeCacheAdapter(ProbeCache(max_entries=100)),
    )


def _by_id(results) -> dict:
    return {r.source_id: r for r in results}


@pytest.mark.asyncio
async def test_end_to_end_three_sources():
    http = (
        FakeHttpClient()
        .route("a.example.com", delay=0.05)
        .route("b.example.com", delay=2.0)
        .route("c.example.com", status=404)
    )
    orchestrator = _orchestrator(http)
    sources = [make_source("a"), make_source("b"), make_source("c")]

    results = await orchestrator.check(sources, CheckOptions(level=ProbeLevel.FUNCTIONAL, keyword="kw", timeout_ms=1000))
    by_id = _by_id(results)

    assert [r.source_id for r in results] == ["a", "b", "c"]
    assert by_id["a"].available is True
    assert by_id["a"].availability_rank >= 2
    assert by_id["b"].available is False
    assert by_id["b"].status == ProbeStatus.TIMEOUT
    assert by_id["c"].available is False
    assert by_id["c"].status == ProbeStatus.ERROR

    selected = select_sources(results, SelectOptions(min_reliability=0.3, max_sources=5))
    assert [r.source_id for r in selected] == ["a"]


@pytest.mark.asyncio
async def test_basic_failure_makes_single_network_call():
    http = FakeHttpClient().route("down.example.com", status=503)
    orchestrator = _orchestrator(http)

    results = await orchestrator.check([make_source("down")], CheckOptions(level=ProbeLevel.DEEP, keyword="kw"))

    assert results[0].availability_rank == 0
    assert http.calls_by_host["down.example.com"] == 1


@pytest.mark.asyncio
async def test_cache_idempotence_within_ttl():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    sources = [make_source("a"), make_source("b")]
    options = CheckOptions(level=ProbeLevel.CONTENT, keyword="MIMK-186")

    first = await orchestrator.check(sources, options)
    calls_after_first = len(http.calls)
    second = await orchestrator.check(sources, options)

    assert len(http.calls) == calls_after_first
    assert http.calls_by_host["a.example.com"] == 2  # BASIC + FUNCTIONAL (CONTENT는 본문 재사용)
    for before, after in zip(first, second):
        assert after.result == before.result
        assert after.reliability == before.reliability
        assert after.availability_rank == before.availability_rank
        assert before.from_cache is False
        assert after.from_cache is True


@pytest.mark.asyncio
async def test_use_cache_false_probes_again():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    sources = [make_source("a")]

    await orchestrator.check(sources, CheckOptions(level=ProbeLevel.BASIC))
    await orchestrator.check(sources, CheckOptions(level=ProbeLevel.BASIC, use_cache=False))

    assert http.calls_by_host["a.example.com"] == 2


@pytest.mark.asyncio
async def test_content_cache_is_keyword_specific():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    sources = [make_source("a")]

    await orchestrator.check(sources, CheckOptions(level=ProbeLevel.CONTENT, keyword="one"))
    await orchestrator.check(sources, CheckOptions(level=ProbeLevel.CONTENT, keyword=" ONE "))
    await orchestrator.check(sources, CheckOptions(level=ProbeLevel.CONTENT, keyword="two"))

    assert http.calls_by_host["a.example.com"] == 4


@pytest.mark.asyncio
async def test_missing_placeholder_rejects_whole_call():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    sources = [make_source("a"), SourceDescriptor(id="bad", name="Bad", url_template="https://bad.example.com/")]

    with pytest.raises(InvalidSourceException) as exc_info:
        await orchestrator.check(sources)

    assert exc_info.value.error_code == "INVALID_SOURCE"
    assert http.calls == []


@pytest.mark.asyncio
async def test_duplicate_source_ids_rejected():
    orchestrator = _orchestrator(FakeHttpClient())

    with pytest.raises(InvalidSourceException):
        await orchestrator.check([make_source("a"), make_source("a", host="other.example.com")])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "options",
    [
        CheckOptions(level="ultra"),
        CheckOptions(keyword="   "),
        CheckOptions(timeout_ms=0),
        CheckOptions(max_concurrency=0),
        CheckOptions(max_concurrency=1000),
        CheckOptions(min_reliability=1.5),
    ],
)
async def test_invalid_options_rejected(options):
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)

    with pytest.raises(InvalidOptionsException):
        await orchestrator.check([make_source("a")], options)
    assert http.calls == []


@pytest.mark.asyncio
async def test_level_accepts_name():
    orchestrator = _orchestrator(FakeHttpClient())

    results = await orchestrator.check([make_source("a")], CheckOptions(level="basic"))
    assert results[0].level == ProbeLevel.BASIC


@pytest.mark.asyncio
async def test_empty_source_list():
    orchestrator = _orchestrator(FakeHttpClient())

    assert await orchestrator.check([]) == []


@pytest.mark.asyncio
async def test_outer_deadline_reports_pending_as_timeout():
    http = FakeHttpClient().route("slow.example.com", delay=5.0)
    orchestrator = _orchestrator(http)
    sources = [make_source("fast"), make_source("slow")]

    started = monotonic()
    results = await orchestrator.check(
        sources, CheckOptions(level=ProbeLevel.BASIC, timeout_ms=10000, deadline_ms=200)
    )
    elapsed = monotonic() - started

    by_id = _by_id(results)
    assert elapsed < 1.0
    assert by_id["fast"].available is True
    assert by_id["slow"].available is False
    assert by_id["slow"].status == ProbeStatus.TIMEOUT


@pytest.mark.asyncio
async def test_cancel_event_stops_in_flight_probes():
    http = FakeHttpClient().route("slow.example.com", delay=5.0)
    orchestrator = _orchestrator(http)
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel_event.set)

    started = monotonic()
    results = await orchestrator.check(
        [make_source("slow"), make_source("other", host="slow.example.com")],
        CheckOptions(level=ProbeLevel.BASIC, timeout_ms=10000, cancel_event=cancel_event),
    )

    assert monotonic() - started < 1.0
    assert len(results) == 2
    assert all(r.status == ProbeStatus.TIMEOUT for r in results)
    assert http.in_flight == 0


@pytest.mark.asyncio
async def test_already_cancelled_check_probes_nothing():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    cancel_event = asyncio.Event()
    cancel_event.set()

    results = await orchestrator.check([make_source("a")], CheckOptions(cancel_event=cancel_event))

    assert results[0].status == ProbeStatus.TIMEOUT
    assert http.calls == []


@pytest.mark.asyncio
async def test_progress_events_in_completion_order():
    http = FakeHttpClient().route("slow.example.com", delay=0.1).route("quick.example.com", delay=0.01)
    orchestrator = _orchestrator(http)
    events = []

    await orchestrator.check(
        [make_source("slow"), make_source("quick")],
        CheckOptions(level=ProbeLevel.BASIC, progress_sink=events.append),
    )

    assert [e.source_id for e in events] == ["quick", "slow"]
    assert [e.completed for e in events] == [1, 2]
    assert all(e.total == 2 for e in events)


@pytest.mark.asyncio
async def test_async_progress_sink_and_cache_hits():
    orchestrator = _orchestrator(FakeHttpClient())
    events = []

    async def sink(event):
        events.append(event)

    options = CheckOptions(level=ProbeLevel.BASIC, progress_sink=sink)
    await orchestrator.check([make_source("a")], options)
    await orchestrator.check([make_source("a")], options)

    assert [e.from_cache for e in events] == [False, True]


@pytest.mark.asyncio
async def test_failing_progress_sink_is_ignored():
    orchestrator = _orchestrator(FakeHttpClient())

    def sink(event):
        raise RuntimeError("ui gone")

    results = await orchestrator.check([make_source("a")], CheckOptions(level=ProbeLevel.BASIC, progress_sink=sink))
    assert results[0].available is True


@pytest.mark.asyncio
async def test_concurrent_checks_share_in_flight_probe():
    http = FakeHttpClient().route("a.example.com", delay=0.1)
    orchestrator = _orchestrator(http)
    options = CheckOptions(level=ProbeLevel.BASIC)

    first, second = await asyncio.gather(
        orchestrator.check([make_source("a")], options),
        orchestrator.check([make_source("a")], options),
    )

    assert http.calls_by_host["a.example.com"] == 1
    assert first[0].result == second[0].result


@pytest.mark.asyncio
async def test_short_deadline_does_not_leak_into_shared_probe():
    http = FakeHttpClient().route("a.example.com", delay=0.5)
    orchestrator = _orchestrator(http)

    short, long = await asyncio.gather(
        orchestrator.check([make_source("a")], CheckOptions(level=ProbeLevel.BASIC, timeout_ms=5000, deadline_ms=200)),
        orchestrator.check([make_source("a")], CheckOptions(level=ProbeLevel.BASIC, timeout_ms=5000, deadline_ms=5000)),
    )

    assert short[0].status == ProbeStatus.TIMEOUT
    assert long[0].available is True
    assert long[0].status == ProbeStatus.ONLINE
    assert http.calls_by_host["a.example.com"] == 1

    cached = await orchestrator.check([make_source("a")], CheckOptions(level=ProbeLevel.BASIC))
    assert cached[0].from_cache is True
    assert cached[0].available is True
    assert cached[0].reliability == pytest.approx(long[0].reliability)


@pytest.mark.asyncio
async def test_deadline_cut_result_is_not_cached():
    http = FakeHttpClient().route("a.example.com", delay=0.3)
    orchestrator = _orchestrator(http)

    first = await orchestrator.check(
        [make_source("a")], CheckOptions(level=ProbeLevel.BASIC, timeout_ms=5000, deadline_ms=100)
    )
    assert first[0].status == ProbeStatus.TIMEOUT
    assert len(orchestrator.reliability) == 0

    second = await orchestrator.check([make_source("a")], CheckOptions(level=ProbeLevel.BASIC, timeout_ms=5000))
    assert second[0].from_cache is False
    assert second[0].available is True
    assert http.calls_by_host["a.example.com"] == 2


@pytest.mark.asyncio
async def test_cache_initialization_failure_falls_back_to_unchecked():
    with patch("sourceprobe.engine.orchestrator.ProbeCacheAdapter", side_effect=RuntimeError("no memory")):
        orchestrator = SourceCheckOrchestrator(http_client=FakeHttpClient())

    results = await orchestrator.check([make_source("a"), make_source("b")])

    assert len(results) == 2
    for item in results:
        assert item.available is True
        assert item.status == ProbeStatus.UNKNOWN
        assert item.availability_rank == 2
        assert item.availability_level == "unchecked"
        assert item.reliability == 0.5
    health = await orchestrator.health()
    assert health["status"] == "error"
    assert "no memory" in health["error"]


@pytest.mark.asyncio
async def test_unexpected_engine_error_falls_back_to_unchecked():
    cache = MagicMock()
    cache.get = AsyncMock(side_effect=RuntimeError("cache exploded"))
    orchestrator = SourceCheckOrchestrator(http_client=FakeHttpClient(), cache=cache)

    results = await orchestrator.check([make_source("a")])

    assert results[0].status == ProbeStatus.UNKNOWN
    assert results[0].availability_level == "unchecked"


@pytest.mark.asyncio
async def test_single_probe_crash_only_affects_that_source():
    prober = MagicMock()
    prober.synthetic_keywords = ["test", "001"]

    async def probe(source, level, keyword, timeout_s):
        raise RuntimeError(f"prober bug for {source.id}")

    prober.probe = probe
    orchestrator = SourceCheckOrchestrator(prober=prober, cache=ProbeCacheAdapter(ProbeCache(max_entries=10)))

    results = await orchestrator.check([make_source("a")])
    assert results[0].status == ProbeStatus.UNKNOWN


@pytest.mark.asyncio
async def test_check_and_select_applies_select_options():
    http = FakeHttpClient().route("broken.example.com", status=500)
    orchestrator = _orchestrator(http)

    selected = await orchestrator.check_and_select(
        [make_source("broken"), make_source("ok")],
        CheckOptions(level=ProbeLevel.BASIC, min_reliability=0.3),
    )

    assert [r.source_id for r in selected] == ["ok"]


@pytest.mark.asyncio
async def test_warmup_bypasses_cache_and_uses_default_keyword():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)
    sources = [make_source("a")]

    await orchestrator.warmup(sources)
    await orchestrator.warmup(sources)

    assert http.calls_by_host["a.example.com"] == 4
    assert "https://a.example.com/search?q=test" in http.calls


@pytest.mark.asyncio
async def test_stats_and_maintenance():
    http = FakeHttpClient().route("bad.example.com", status=500)
    orchestrator = _orchestrator(http)
    sources = [make_source("good"), make_source("bad")]
    options = CheckOptions(level=ProbeLevel.BASIC)

    await orchestrator.check(sources, options)
    await orchestrator.check(sources, options)
    stats = orchestrator.stats()

    assert stats["total_checks"] == 4
    assert stats["successful_checks"] == 2
    assert stats["failed_checks"] == 2
    assert stats["cache_hits"] == 2
    assert stats["backend_checks"] == 2
    assert stats["cache_hit_rate"] == 0.5
    assert stats["cache_size"] == 2
    assert stats["tracked_sources"] == 2

    health = await orchestrator.health()
    assert health["status"] == "ok"
    assert health["store_healthy"] is None

    assert orchestrator.purge_expired() == 0
    orchestrator.clear_cache()
    assert orchestrator.stats()["cache_size"] == 0


@pytest.mark.asyncio
async def test_close_closes_http_client():
    http = FakeHttpClient()
    orchestrator = _orchestrator(http)

    await orchestrator.close()
    assert http.closed is True


@pytest.mark.asyncio
async def test_close_closes_shared_store():
    store = MagicMock()
    http = FakeHttpClient()
    orchestrator = SourceCheckOrchestrator(
        http_client=http,
        content_matcher=FakeContentMatcher(),
        cache=ProbeCacheAdapter(ProbeCache(max_entries=10), store=store),
    )

    await orchestrator.close()

    assert http.closed is True
    store.close.assert_called_once()


@pytest.mark.asyncio
async def test_summary_counts():
    http = FakeHttpClient().route("t.example.com", delay=1.0).route("e.example.com", status=404)
    orchestrator = _orchestrator(http)

    results = await orchestrator.check(
        [make_source("ok"), make_source("t"), make_source("e")],
        CheckOptions(level=ProbeLevel.BASIC, timeout_ms=100),
    )
    summary = summarize(results, "kw")

    assert summary["total"] == 3
    assert summary["available"] == 1
    assert summary["unavailable"] == 2
    assert summary["timeout"] == 1
    assert summary["error"] == 1
    assert summary["keyword"] == "kw"


def test_requires_http_client_or_prober():
    with pytest.raises(ValueError):
        SourceCheckOrchestrator()


def test_instances_do_not_share_state():
    first = _orchestrator(FakeHttpClient())
    second = _orchestrator(FakeHttpClient())

    assert first.cache is not second.cache
    assert first.reliability is not second.reliability
