"""Budget Manager - Check Deadline and Per-Probe Timeout Management

예산 구조:
- 전체: CheckOptions.deadline_ms (기본 30초)
- 프로브: 요청 타임아웃 × 요청 수 (소스 고유 한도, deadline과 무관)
- deadline: 검사마다 자기 대기에만 적용 (공유 프로브에는 적용하지 않음)
- 최소 여유: 남은 예산이 이보다 적으면 새 프로브를 시작하지 않음
"""

from dataclasses import dataclass
from time import monotonic
from typing import Optional


@dataclass
class BudgetConfig:
    """예산 설정 (초 단위)"""

    total_budget: float = 30.0  # 전체 검사 deadline
    request_timeout: float = 8.0  # HTTP 요청 1회 타임아웃
    min_remaining: float = 0.1  # 프로브 시작 최소 여유 시간

    def __post_init__(self):
        """설정 검증"""
        if self.total_budget <= 0:
            raise ValueError(f"total_budget must be positive ({self.total_budget}s)")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive ({self.request_timeout}s)")
        if self.min_remaining < 0:
            raise ValueError(f"min_remaining must be >= 0 ({self.min_remaining}s)")


class BudgetManager:
    """검사 deadline 관리자

    검사 1회(check 호출)마다 새로 만들어 사용합니다.

    Usage:
        manager = BudgetManager(BudgetConfig(total_budget=10.0, request_timeout=2.0))
        manager.start()

        if manager.can_start_probe():
            timeout = manager.get_probe_timeout(request_count=2)

        manager.checkpoint("probes_done")
        report = manager.get_report()
    """

    def __init__(self, config: Optional[BudgetConfig] = None):
        self.config = config or BudgetConfig()
        self.start_time: Optional[float] = None
        self._checkpoints: dict[str, float] = {}

    def start(self) -> None:
        """예산 측정 시작"""
        self.start_time = monotonic()
        self._checkpoints.clear()

    def checkpoint(self, name: str) -> None:
        """체크포인트 기록

        Args:
            name: 체크포인트 이름 (예: "cache_resolved", "probes_done")

        Raises:
            RuntimeError: start()가 호출되지 않은 경우
        """
        if self.start_time is None:
            raise RuntimeError("Budget not started. Call start() first.")
        self._checkpoints[name] = monotonic() - self.start_time

    def elapsed(self) -> float:
        """경과 시간 반환 (초). start() 전에는 0.0"""
        if self.start_time is None:
            return 0.0
        return monotonic() - self.start_time

    def remaining(self) -> float:
        """남은 예산 반환 (초, 음수 없음)"""
        return max(0.0, self.config.total_budget - self.elapsed())

    def is_exhausted(self) -> bool:
        """예산 소진 여부"""
        return self.remaining() <= 0.0

    def can_start_probe(self) -> bool:
        """새 프로브를 시작할 만큼 예산이 남았는지 여부"""
        return self.remaining() >= max(self.config.min_remaining, 1e-3)

    def get_probe_timeout(self, request_count: int = 1) -> float:
        """프로브 1회 전체에 적용할 타임아웃 (초)

        요청 타임아웃 × 요청 수입니다. 같은 프로브를 여러 검사가 공유하므로
        남은 예산으로 줄이지 않습니다 (deadline은 각 검사의 대기에서 처리).

        Args:
            request_count: 프로브가 수행할 최대 HTTP 요청 수

        Returns:
            float: 프로브 타임아웃 (초)
        """
        return self.config.request_timeout * max(1, request_count)

    def get_report(self) -> dict:
        """예산 사용 리포트 생성

        Returns:
            dict: total_budget, elapsed, remaining, checkpoints, is_exhausted
        """
        return {
            "total_budget": self.config.total_budget,
            "elapsed": self.elapsed(),
            "remaining": self.remaining(),
            "checkpoints": self._checkpoints.copy(),
            "is_exhausted": self.is_exhausted(),
        }
