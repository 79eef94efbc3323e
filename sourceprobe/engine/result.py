"""Probe Result - Standardized Probe Outcome

Provides the immutable value object every probe (fresh or cached) produces.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional


class ProbeLevel(IntEnum):
    """검사 레벨

    각 레벨은 이전 레벨의 성공을 전제로 합니다 (BASIC < FUNCTIONAL < CONTENT < DEEP).
    """

    BASIC = 1  # 기본 도메인 도달 가능 여부
    FUNCTIONAL = 2  # 실제 키워드로 검색 URL 요청
    CONTENT = 3  # 검색 결과와 키워드의 관련성
    DEEP = 4  # 합성 키워드로 일관성 재검증

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | ProbeLevel") -> "ProbeLevel":
        """이름("functional") 또는 숫자(2)로부터 레벨 생성

        Raises:
            ValueError: 알 수 없는 레벨
        """
        if isinstance(value, ProbeLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown probe level: {value}") from None


class ProbeStatus(str, Enum):
    """프로브 상태"""

    ONLINE = "online"  # 요청한 레벨까지 통과
    OFFLINE = "offline"  # 연결 실패 (DNS, 연결 거부)
    TIMEOUT = "timeout"  # 요청/검사 시간 초과
    ERROR = "error"  # HTTP 오류, 오류 페이지, 내용 불일치 등
    UNKNOWN = "unknown"  # 검사하지 못함 (엔진 장애 시 보수적 폴백)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProbeResult:
    """프로브 결과 표준 포맷

    생성 후 절대 변경되지 않는 값 객체입니다. level은 "결정이 내려진 마지막 레벨"이며,
    level 이하의 모든 레벨은 시도되었음을 의미합니다.

    Attributes:
        source_id: 검색 소스 ID
        level: 도달한 레벨 (실패 시 실패한 레벨)
        available: 요청한 레벨까지 모두 통과했는지 여부
        status: 프로브 상태
        response_time_ms: 첫 요청(BASIC)의 응답 시간
        basic_score ~ deep_score: 레벨별 점수 [0, 1], 시도하지 않았으면 None
        error: 오류 메시지
        checked_at: 검사 시각 (UTC)
    """

    source_id: str
    level: ProbeLevel
    available: bool
    status: ProbeStatus
    requested_level: Optional[ProbeLevel] = None
    response_time_ms: Optional[float] = None
    basic_score: Optional[float] = None
    functional_score: Optional[float] = None
    content_score: Optional[float] = None
    deep_score: Optional[float] = None
    http_status: Optional[int] = None
    estimated_results: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    checked_at: datetime = field(default_factory=_utcnow)

    def sub_scores(self) -> dict[ProbeLevel, Optional[float]]:
        """레벨별 점수 (시도하지 않은 레벨은 None)"""
        return {
            ProbeLevel.BASIC: self.basic_score,
            ProbeLevel.FUNCTIONAL: self.functional_score,
            ProbeLevel.CONTENT: self.content_score,
            ProbeLevel.DEEP: self.deep_score,
        }

    @classmethod
    def timeout(
        cls,
        source_id: str,
        requested_level: ProbeLevel,
        error: str = "Probe timeout exceeded",
        level: ProbeLevel = ProbeLevel.BASIC,
        response_time_ms: Optional[float] = None,
    ) -> "ProbeResult":
        """타임아웃 결과 생성

        외부 deadline 만료로 검사하지 못한 소스도 이 결과로 보고됩니다.

        Args:
            source_id: 검색 소스 ID
            requested_level: 요청된 레벨
            error: 오류 메시지
            level: 타임아웃이 발생한 레벨
            response_time_ms: 경과 시간

        Returns:
            ProbeResult: 타임아웃 결과
        """
        return cls(
            source_id=source_id,
            level=level,
            available=False,
            status=ProbeStatus.TIMEOUT,
            requested_level=requested_level,
            response_time_ms=response_time_ms,
            error=error,
            error_code="NETWORK_TIMEOUT",
        )

    @classmethod
    def unchecked(cls, source_id: str, requested_level: ProbeLevel, reason: str) -> "ProbeResult":
        """검사 불가 결과 생성 (가용한 것으로 간주)

        Args:
            source_id: 검색 소스 ID
            requested_level: 요청된 레벨
            reason: 검사하지 못한 이유

        Returns:
            ProbeResult: available=True, status=unknown
        """
        return cls(
            source_id=source_id,
            level=ProbeLevel.BASIC,
            available=True,
            status=ProbeStatus.UNKNOWN,
            requested_level=requested_level,
            error=reason,
            error_code="UNCHECKED",
        )
