"""Pydantic 스키마 정의 (source-status API + Redis 캐시 직렬화)

외부 JSON은 camelCase (sourceId, urlTemplate, ...)를 사용하고,
내부 필드는 snake_case를 유지합니다 (populate_by_name으로 둘 다 허용).
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sourceprobe.core.config import settings
from sourceprobe.engine.models import AggregatedSourceResult, CheckOptions, SourceDescriptor
from sourceprobe.engine.result import ProbeLevel, ProbeResult, ProbeStatus


class CamelModel(BaseModel):
    """camelCase alias 공통 설정"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceInput(CamelModel):
    """검색 소스 정의 (요청)"""
    id: str = Field(..., min_length=1, max_length=100, description="소스 ID (고유)")
    name: str = Field("", max_length=200, description="표시 이름")
    url_template: str = Field(..., min_length=1, max_length=2048, description="{keyword} placeholder를 포함한 검색 URL")
    icon: str = Field("", max_length=500)
    category: str = Field("", max_length=100)
    priority: int = Field(100, ge=0, le=10**6, description="낮을수록 선호")
    is_builtin: bool = Field(False, description="내장 소스 여부")

    def to_descriptor(self) -> SourceDescriptor:
        return SourceDescriptor(
            id=self.id,
            name=self.name or self.id,
            url_template=self.url_template,
            icon=self.icon,
            category=self.category,
            priority=self.priority,
            is_builtin=self.is_builtin,
        )


class CheckOptionsInput(CamelModel):
    """검사 옵션 (요청)

    timeout은 밀리초이며 [probe_min_timeout_ms, probe_max_timeout_ms]로 clamp됩니다.
    """
    level: str = Field("functional", description="basic | functional | content | deep")
    timeout: int = Field(default_factory=lambda: settings.probe_default_timeout_ms, description="프로브별 타임아웃 (ms)")
    max_concurrency: int = Field(default_factory=lambda: settings.probe_max_concurrency, ge=1)
    use_cache: bool = True
    include_partial: bool = False
    min_reliability: float = Field(0.0, ge=0.0, le=1.0)
    max_sources: Optional[int] = Field(None, ge=0)
    prioritize_content_match: bool = False
    prefer_fast: bool = False

    @field_validator("timeout")
    @classmethod
    def clamp_timeout(cls, v: int) -> int:
        """타임아웃 범위 보정"""
        return max(settings.probe_min_timeout_ms, min(settings.probe_max_timeout_ms, v))

    @field_validator("max_concurrency")
    @classmethod
    def clamp_concurrency(cls, v: int) -> int:
        """동시성 상한 보정"""
        return min(v, settings.probe_max_concurrency_limit)


class SourceStatusCheckRequest(CamelModel):
    """소스 상태 검사 요청"""
    sources: list[SourceInput] = Field(..., min_length=1, description="검사할 소스 목록")
    keyword: str = Field(default_factory=lambda: settings.probe_default_keyword, max_length=200)
    options: CheckOptionsInput = Field(default_factory=CheckOptionsInput)

    @field_validator("sources")
    @classmethod
    def limit_sources(cls, v: list[SourceInput]) -> list[SourceInput]:
        if len(v) > settings.api_check_max_sources:
            raise ValueError(f"too many sources (max {settings.api_check_max_sources})")
        return v

    @field_validator("keyword")
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("keyword must not be blank")
        return v.strip()

    def to_check_options(self) -> CheckOptions:
        opts = self.options
        return CheckOptions(
            level=opts.level,
            keyword=self.keyword,
            timeout_ms=opts.timeout,
            max_concurrency=opts.max_concurrency,
            use_cache=opts.use_cache,
            include_partial=opts.include_partial,
            min_reliability=opts.min_reliability,
            max_sources=opts.max_sources,
            prioritize_content_match=opts.prioritize_content_match,
            prefer_fast=opts.prefer_fast,
        )


class SourceStatusItem(CamelModel):
    """소스별 검사 결과"""
    source_id: str
    name: str
    available: bool
    status: str
    level: str
    availability_rank: int = Field(..., ge=0, le=4)
    availability_level: str
    reliability: float
    final_score: float
    response_time_ms: Optional[float] = None
    basic_score: Optional[float] = None
    functional_score: Optional[float] = None
    content_score: Optional[float] = None
    deep_score: Optional[float] = None
    http_status: Optional[int] = None
    error: Optional[str] = None
    checked_at: datetime
    from_cache: bool = False

    @classmethod
    def from_aggregated(cls, item: AggregatedSourceResult) -> "SourceStatusItem":
        return cls(
            source_id=item.source_id,
            name=item.name,
            available=item.available,
            status=item.status.value,
            level=item.level.label,
            availability_rank=item.availability_rank,
            availability_level=item.availability_level,
            reliability=item.reliability,
            final_score=item.final_score,
            response_time_ms=item.response_time_ms,
            basic_score=item.basic_score,
            functional_score=item.functional_score,
            content_score=item.content_score,
            deep_score=item.deep_score,
            http_status=item.result.http_status,
            error=item.result.error,
            checked_at=item.checked_at,
            from_cache=item.from_cache,
        )


class CheckSummary(CamelModel):
    """검사 요약"""
    total: int
    available: int
    unavailable: int
    timeout: int
    error: int
    average_response_time: float = Field(0.0, description="가용 소스 평균 응답 시간 (ms)")
    keyword: str
    timestamp: datetime


class SourceStatusCheckResponse(CamelModel):
    """소스 상태 검사 응답"""
    success: bool
    summary: Optional[CheckSummary] = None
    results: list[SourceStatusItem] = Field(default_factory=list)
    message: str
    error_code: Optional[str] = None


class CheckStatsResponse(CamelModel):
    """검사 통계"""
    total_checks: int
    successful_checks: int
    failed_checks: int
    cache_hits: int
    backend_checks: int
    average_response_time: float
    cache_hit_rate: float
    cache_size: int
    tracked_sources: int


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    timestamp: datetime
    version: str
    cache: dict[str, Any] = Field(default_factory=dict)


class CachedProbeResult(BaseModel):
    """Redis에 저장되는 ProbeResult 직렬화 포맷"""
    source_id: str
    level: int = Field(..., ge=1, le=4)
    available: bool
    status: str
    requested_level: Optional[int] = Field(None, ge=1, le=4)
    response_time_ms: Optional[float] = None
    basic_score: Optional[float] = None
    functional_score: Optional[float] = None
    content_score: Optional[float] = None
    deep_score: Optional[float] = None
    http_status: Optional[int] = None
    estimated_results: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    checked_at: datetime

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        ProbeStatus(v)
        return v

    @classmethod
    def from_result(cls, result: ProbeResult) -> "CachedProbeResult":
        return cls(
            source_id=result.source_id,
            level=int(result.level),
            available=result.available,
            status=result.status.value,
            requested_level=int(result.requested_level) if result.requested_level is not None else None,
            response_time_ms=result.response_time_ms,
            basic_score=result.basic_score,
            functional_score=result.functional_score,
            content_score=result.content_score,
            deep_score=result.deep_score,
            http_status=result.http_status,
            estimated_results=result.estimated_results,
            error=result.error,
            error_code=result.error_code,
            checked_at=result.checked_at,
        )

    def to_result(self) -> ProbeResult:
        return ProbeResult(
            source_id=self.source_id,
            level=ProbeLevel(self.level),
            available=self.available,
            status=ProbeStatus(self.status),
            requested_level=ProbeLevel(self.requested_level) if self.requested_level is not None else None,
            response_time_ms=self.response_time_ms,
            basic_score=self.basic_score,
            functional_score=self.functional_score,
            content_score=self.content_score,
            deep_score=self.deep_score,
            http_status=self.http_status,
            estimated_results=self.estimated_results,
            error=self.error,
            error_code=self.error_code,
            checked_at=self.checked_at,
        )
