"""Prober - Executes one tiered check for one source

Levels are attempted strictly in order (BASIC → FUNCTIONAL → CONTENT → DEEP)
and the first failure stops escalation: no request is made for any level
above the failing one. Every failure mode ends up inside the returned
ProbeResult; only task cancellation propagates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from time import monotonic
from typing import Optional

from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import (
    ContentMismatchException,
    EmptyResponseException,
    ErrorPageException,
    HttpStatusException,
    MalformedTemplateException,
    NetworkTimeoutException,
    ProbeException,
)
from sourceprobe.core.logging import logger, sanitize_for_log
from sourceprobe.engine.models import SourceDescriptor
from sourceprobe.engine.result import ProbeLevel, ProbeResult, ProbeStatus
from sourceprobe.engine.strategy import ProbeStrategy
from sourceprobe.utils.url_utils import build_search_url, extract_base_url

from .content_matcher import ContentMatcher, KeywordContentMatcher
from .http_client import HttpClient, HttpResponse


@dataclass
class _ProbeState:
    """프로브 진행 중 누적되는 값 (결과 생성 전까지만 사용)"""

    level: ProbeLevel = ProbeLevel.BASIC
    scores: dict[ProbeLevel, float] = field(default_factory=dict)
    response_time_ms: Optional[float] = None
    http_status: Optional[int] = None
    estimated_results: Optional[int] = None
    body: str = ""


class Prober:
    """단계별 프로브 실행자

    Usage:
        prober = Prober(http_client=ProbeHttpClient())
        result = await prober.probe(source, ProbeLevel.CONTENT, "MIMK-186", timeout_s=8.0)
    """

    def __init__(
        self,
        http_client: HttpClient,
        content_matcher: Optional[ContentMatcher] = None,
        strategy: Optional[ProbeStrategy] = None,
        fast_threshold_ms: Optional[float] = None,
        min_basic_score: Optional[float] = None,
        min_body_length: Optional[int] = None,
        synthetic_keywords: Optional[list[str]] = None,
        deep_min_score: Optional[float] = None,
    ):
        """
        Args:
            http_client: HTTP 클라이언트 (fetch 메서드 구현)
            content_matcher: 내용 매처 (기본값: KeywordContentMatcher)
            strategy: 프로브 전략
            fast_threshold_ms: 이 시간 이하 응답은 만점
            min_basic_score: 타임아웃 직전 응답의 점수
            min_body_length: FUNCTIONAL 최소 본문 길이
            synthetic_keywords: DEEP 검증용 합성 키워드 (2~3개)
            deep_min_score: DEEP 통과 최소 일치 비율

        Raises:
            ValueError: http_client가 None인 경우
        """
        if http_client is None:
            raise ValueError("http_client must not be None")

        self.http = http_client
        self.matcher: ContentMatcher = content_matcher or KeywordContentMatcher()
        self.strategy = strategy or ProbeStrategy()
        self.fast_threshold_ms = (
            settings.probe_fast_threshold_ms if fast_threshold_ms is None else fast_threshold_ms
        )
        self.min_basic_score = settings.probe_min_basic_score if min_basic_score is None else min_basic_score
        self.min_body_length = (
            settings.functional_min_body_length if min_body_length is None else min_body_length
        )
        self.synthetic_keywords = list(synthetic_keywords or settings.deep_synthetic_keywords)
        self.deep_min_score = settings.deep_min_score if deep_min_score is None else deep_min_score

    async def probe(
        self,
        source: SourceDescriptor,
        level: ProbeLevel,
        keyword: str,
        timeout_s: float,
    ) -> ProbeResult:
        """프로브 실행 (예외를 던지지 않음)

        Args:
            source: 검색 소스
            level: 요청 레벨
            keyword: 검색 키워드
            timeout_s: HTTP 요청 1회 타임아웃 (초)

        Returns:
            ProbeResult: 프로브 결과. 실패 시 available=False, level=실패한 레벨

        Raises:
            asyncio.CancelledError: 상위에서 취소된 경우에만
        """
        state = _ProbeState()
        try:
            for current in self.strategy.levels_to_attempt(level):
                state.level = current
                await self._run_level(current, source, keyword, timeout_s, state)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._failure(source, level, state, e)

        logger.debug(
            f"[PROBER] Passed: source={source.id}, level={level.label}, "
            f"response_time={state.response_time_ms or 0:.0f}ms"
        )
        return ProbeResult(
            source_id=source.id,
            level=level,
            available=True,
            status=ProbeStatus.ONLINE,
            requested_level=level,
            response_time_ms=state.response_time_ms,
            basic_score=state.scores.get(ProbeLevel.BASIC),
            functional_score=state.scores.get(ProbeLevel.FUNCTIONAL),
            content_score=state.scores.get(ProbeLevel.CONTENT),
            deep_score=state.scores.get(ProbeLevel.DEEP),
            http_status=state.http_status,
            estimated_results=state.estimated_results,
        )

    async def _run_level(
        self,
        level: ProbeLevel,
        source: SourceDescriptor,
        keyword: str,
        timeout_s: float,
        state: _ProbeState,
    ) -> None:
        if level == ProbeLevel.BASIC:
            await self._check_basic(source, timeout_s, state)
        elif level == ProbeLevel.FUNCTIONAL:
            await self._check_functional(source, keyword, timeout_s, state)
        elif level == ProbeLevel.CONTENT:
            self._check_content(keyword, state)
        elif level == ProbeLevel.DEEP:
            await self._check_deep(source, timeout_s, state)

    async def _check_basic(self, source: SourceDescriptor, timeout_s: float, state: _ProbeState) -> None:
        """기본 도메인 도달 가능 여부 (상태 코드 < 400)"""
        base_url = extract_base_url(source.url_template)
        if not base_url:
            raise MalformedTemplateException(source.url_template, "cannot extract base url")

        resp = await self._request(base_url, timeout_s)
        state.response_time_ms = round(resp.elapsed_ms, 1)
        state.http_status = resp.status_code
        if resp.status_code >= 400:
            raise HttpStatusException(base_url, resp.status_code)

        state.scores[ProbeLevel.BASIC] = self.speed_score(resp.elapsed_ms, timeout_s * 1000)

    async def _check_functional(
        self,
        source: SourceDescriptor,
        keyword: str,
        timeout_s: float,
        state: _ProbeState,
    ) -> None:
        """실제 키워드로 검색 URL 요청"""
        url = build_search_url(source.url_template, keyword)
        resp = await self._request(url, timeout_s)
        state.http_status = resp.status_code
        self._validate_search_page(url, resp)

        state.body = resp.text
        state.scores[ProbeLevel.FUNCTIONAL] = self.speed_score(resp.elapsed_ms, timeout_s * 1000)

    def _check_content(self, keyword: str, state: _ProbeState) -> None:
        """FUNCTIONAL에서 받은 본문으로 관련성 추정 (추가 요청 없음)"""
        matched, estimated = self._match(state.body, keyword)
        state.estimated_results = estimated
        if not matched:
            raise ContentMismatchException(keyword)
        state.scores[ProbeLevel.CONTENT] = self.content_score(matched, estimated)

    async def _check_deep(self, source: SourceDescriptor, timeout_s: float, state: _ProbeState) -> None:
        """합성 키워드로 FUNCTIONAL+CONTENT 반복, 일치 비율이 deep_score"""
        matched_count = 0
        for synthetic in self.synthetic_keywords:
            url = build_search_url(source.url_template, synthetic)
            try:
                resp = await self._request(url, timeout_s)
                self._validate_search_page(url, resp)
                matched, _ = self._match(resp.text, synthetic)
            except ProbeException as e:
                logger.debug(f"[PROBER] Deep probe miss: source={source.id}, keyword={synthetic}, {e.error_code}")
                matched = False
            if matched:
                matched_count += 1

        deep_score = round(matched_count / len(self.synthetic_keywords), 4) if self.synthetic_keywords else 0.0
        state.scores[ProbeLevel.DEEP] = deep_score
        if deep_score < self.deep_min_score:
            raise ContentMismatchException(
                ",".join(self.synthetic_keywords),
                f"inconsistent results ({matched_count}/{len(self.synthetic_keywords)} synthetic keywords matched)",
            )

    async def _request(self, url: str, timeout_s: float) -> HttpResponse:
        """요청 1회 (타임아웃 강제)"""
        started = monotonic()
        try:
            resp = await asyncio.wait_for(self.http.fetch(url, timeout_s=timeout_s), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise NetworkTimeoutException(url, int(timeout_s * 1000)) from e

        wall_ms = (monotonic() - started) * 1000
        if resp.elapsed_ms <= 0:
            resp = HttpResponse(resp.status_code, resp.text, resp.url, wall_ms)
        return resp

    def _validate_search_page(self, url: str, resp: HttpResponse) -> None:
        if resp.status_code >= 400:
            raise HttpStatusException(url, resp.status_code)
        body_length = len(resp.text.strip()) if resp.text else 0
        if body_length < self.min_body_length:
            raise EmptyResponseException(url, body_length)
        marker = self.strategy.find_error_page_marker(resp.text)
        if marker:
            raise ErrorPageException(url, marker)

    def _match(self, body: str, keyword: str) -> tuple[bool, int]:
        try:
            matched, estimated = self.matcher.match(body, keyword)
        except Exception as e:
            raise ProbeException(
                f"Content matcher failed: {type(e).__name__}: {e}", "CONTENT_MATCHER_ERROR"
            ) from e
        return bool(matched), max(0, int(estimated or 0))

    def speed_score(self, elapsed_ms: float, timeout_ms: float) -> float:
        """응답 속도 점수

        fast_threshold 이하면 1.0, 이후 타임아웃까지 min_basic_score로 선형 감소
        """
        if elapsed_ms <= self.fast_threshold_ms or timeout_ms <= self.fast_threshold_ms:
            return 1.0
        fraction = (elapsed_ms - self.fast_threshold_ms) / (timeout_ms - self.fast_threshold_ms)
        fraction = min(1.0, max(0.0, fraction))
        return round(1.0 - (1.0 - self.min_basic_score) * fraction, 4)

    @staticmethod
    def content_score(matched: bool, estimated_results: int) -> float:
        """매칭 결과 → 점수 (불일치 0.0, 일치 0.6~1.0)"""
        if not matched:
            return 0.0
        return round(0.6 + 0.4 * min(estimated_results, 10) / 10, 4)

    def _failure(
        self,
        source: SourceDescriptor,
        requested: ProbeLevel,
        state: _ProbeState,
        error: Exception,
    ) -> ProbeResult:
        status = self.strategy.status_for_error(error)
        # 실패한 레벨도 "결정이 내려진" 레벨이므로 점수 0으로 기록 (이미 기록된 점수는 유지)
        state.scores.setdefault(state.level, 0.0)

        if isinstance(error, ProbeException):
            message = error.message
        else:
            message = f"{type(error).__name__}: {error}"
            logger.warning(f"[PROBER] Unexpected error: source={source.id}, {message}", exc_info=True)

        logger.info(
            f"[PROBER] Failed: source={source.id}, level={state.level.label}, status={status.value}, "
            f"error={sanitize_for_log(message, max_length=200)}"
        )
        return ProbeResult(
            source_id=source.id,
            level=state.level,
            available=False,
            status=status,
            requested_level=requested,
            response_time_ms=state.response_time_ms,
            basic_score=state.scores.get(ProbeLevel.BASIC),
            functional_score=state.scores.get(ProbeLevel.FUNCTIONAL),
            content_score=state.scores.get(ProbeLevel.CONTENT),
            deep_score=state.scores.get(ProbeLevel.DEEP),
            http_status=state.http_status,
            estimated_results=state.estimated_results,
            error=message,
            error_code=self.strategy.error_code_for(error),
        )
