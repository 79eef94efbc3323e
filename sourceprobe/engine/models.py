"""Engine Models - Source descriptors, options and aggregated results

Input/output value types of the engine layer. The HTTP layer converts its
pydantic schemas into these types before delegating to the orchestrator.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import InvalidOptionsException, InvalidSourceException
from sourceprobe.utils.url_utils import has_keyword_placeholder

from .result import ProbeLevel, ProbeResult, ProbeStatus


@dataclass(frozen=True)
class SourceDescriptor:
    """검색 소스 정의

    호출자가 소유하며 엔진은 참조만 합니다 (복사/변경하지 않음).
    """

    id: str
    name: str
    url_template: str
    icon: str = ""
    category: str = ""
    priority: int = 100  # 낮을수록 선호
    is_builtin: bool = False


def validate_sources(sources: Iterable[SourceDescriptor]) -> list[SourceDescriptor]:
    """검색 소스 목록 검증

    검사를 시작하기 전에 호출 전체를 거절합니다.

    Args:
        sources: 검색 소스 목록

    Returns:
        list[SourceDescriptor]: 검증된 목록 (입력 순서 유지)

    Raises:
        InvalidSourceException: id 누락, 중복 id, {keyword} placeholder 누락
    """
    validated: list[SourceDescriptor] = []
    seen: set[str] = set()

    for source in sources:
        source_id = getattr(source, "id", None)
        if not source_id or not isinstance(source_id, str) or not source_id.strip():
            raise InvalidSourceException(str(source_id), "source id must be a non-empty string")
        if source_id in seen:
            raise InvalidSourceException(source_id, "duplicate source id")
        if not isinstance(source.url_template, str) or not has_keyword_placeholder(source.url_template):
            raise InvalidSourceException(source_id, "url template must contain a {keyword} placeholder")
        seen.add(source_id)
        validated.append(source)

    return validated


ProgressSink = Callable[["ProgressEvent"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ProgressEvent:
    """프로브 완료 이벤트 (완료 순서대로 전달, 진행률 표시용)"""

    source_id: str
    result: ProbeResult
    completed: int
    total: int
    from_cache: bool = False


@dataclass(frozen=True)
class SelectOptions:
    """Selector 옵션"""

    include_partial: bool = False
    min_reliability: float = 0.0
    max_sources: Optional[int] = None
    prioritize_content_match: bool = False
    prefer_fast: bool = False


@dataclass
class CheckOptions:
    """검사 옵션

    Attributes:
        level: 요청 검사 레벨
        keyword: 검사 키워드
        timeout_ms: 프로브(요청)별 타임아웃
        max_concurrency: 동시 프로브 상한
        use_cache: 캐시 조회 여부 (False여도 결과는 캐시에 기록)
        deadline_ms: 전체 검사 deadline (None이면 설정값)
        progress_sink: 프로브 완료 시 호출되는 콜백 (sync/async)
        cancel_event: set()되면 진행 중인 프로브를 취소하고 부분 결과 반환
    """

    level: ProbeLevel = ProbeLevel.FUNCTIONAL
    keyword: str = field(default_factory=lambda: settings.probe_default_keyword)
    timeout_ms: int = field(default_factory=lambda: settings.probe_default_timeout_ms)
    max_concurrency: int = field(default_factory=lambda: settings.probe_max_concurrency)
    use_cache: bool = True
    include_partial: bool = False
    min_reliability: float = 0.0
    max_sources: Optional[int] = None
    prioritize_content_match: bool = False
    prefer_fast: bool = False
    deadline_ms: Optional[int] = None
    progress_sink: Optional[ProgressSink] = None
    cancel_event: Optional[asyncio.Event] = None

    def validate(self) -> "CheckOptions":
        """옵션 검증

        Raises:
            InvalidOptionsException: 잘못된 옵션 값
        """
        try:
            self.level = ProbeLevel.parse(self.level)
        except ValueError as e:
            raise InvalidOptionsException("level", str(e)) from e

        if not isinstance(self.keyword, str) or not self.keyword.strip():
            raise InvalidOptionsException("keyword", "keyword must be a non-empty string")
        if not isinstance(self.timeout_ms, (int, float)) or self.timeout_ms <= 0:
            raise InvalidOptionsException("timeout_ms", f"must be positive (value: {self.timeout_ms})")
        if not isinstance(self.max_concurrency, int) or self.max_concurrency <= 0:
            raise InvalidOptionsException("max_concurrency", f"must be positive (value: {self.max_concurrency})")
        if self.max_concurrency > settings.probe_max_concurrency_limit:
            raise InvalidOptionsException(
                "max_concurrency",
                f"must be <= {settings.probe_max_concurrency_limit} (value: {self.max_concurrency})",
            )
        if not 0.0 <= self.min_reliability <= 1.0:
            raise InvalidOptionsException("min_reliability", f"must be within [0, 1] (value: {self.min_reliability})")
        if self.max_sources is not None and self.max_sources < 0:
            raise InvalidOptionsException("max_sources", f"must be >= 0 (value: {self.max_sources})")
        if self.deadline_ms is not None and self.deadline_ms <= 0:
            raise InvalidOptionsException("deadline_ms", f"must be positive (value: {self.deadline_ms})")

        self.keyword = self.keyword.strip()
        return self

    def to_select_options(self) -> SelectOptions:
        return SelectOptions(
            include_partial=self.include_partial,
            min_reliability=self.min_reliability,
            max_sources=self.max_sources,
            prioritize_content_match=self.prioritize_content_match,
            prefer_fast=self.prefer_fast,
        )


@dataclass(frozen=True)
class AggregatedSourceResult:
    """소스 + 최선의 프로브 결과 + 파생 점수

    요청마다 새로 만들어지며 엔진은 이를 저장하지 않습니다.
    """

    source: SourceDescriptor
    result: ProbeResult
    final_score: float
    reliability: float
    availability_rank: int
    availability_level: str
    from_cache: bool = False

    @property
    def source_id(self) -> str:
        return self.source.id

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def available(self) -> bool:
        return self.result.available

    @property
    def status(self) -> ProbeStatus:
        return self.result.status

    @property
    def level(self) -> ProbeLevel:
        return self.result.level

    @property
    def response_time_ms(self) -> Optional[float]:
        return self.result.response_time_ms

    @property
    def basic_score(self) -> Optional[float]:
        return self.result.basic_score

    @property
    def functional_score(self) -> Optional[float]:
        return self.result.functional_score

    @property
    def content_score(self) -> Optional[float]:
        return self.result.content_score

    @property
    def deep_score(self) -> Optional[float]:
        return self.result.deep_score

    @property
    def checked_at(self) -> datetime:
        return self.result.checked_at

    def to_dict(self) -> dict[str, Any]:
        """외부 노출용 dict (camelCase 키)"""
        return {
            "sourceId": self.source_id,
            "name": self.name,
            "available": self.available,
            "status": self.status.value,
            "level": self.level.label,
            "availabilityRank": self.availability_rank,
            "availabilityLevel": self.availability_level,
            "reliability": self.reliability,
            "finalScore": self.final_score,
            "responseTimeMs": self.response_time_ms,
            "basicScore": self.basic_score,
            "functionalScore": self.functional_score,
            "contentScore": self.content_score,
            "deepScore": self.deep_score,
            "httpStatus": self.result.http_status,
            "error": self.result.error,
            "checkedAt": self.checked_at.isoformat(),
            "fromCache": self.from_cache,
        }
