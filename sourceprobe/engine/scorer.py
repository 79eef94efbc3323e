"""Scorer - Combines per-level signals into a final score, rank and label

`Scorer.score` is a pure function of its ProbeResult argument. Historical
reliability is kept separately by `ReliabilityTracker`.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

from sourceprobe.core.config import settings

from .result import ProbeLevel, ProbeResult, ProbeStatus


RANK_UNAVAILABLE = 0
RANK_DEGRADED = 1
RANK_FUNCTIONAL = 2
RANK_CONTENT = 3
RANK_EXCELLENT = 4

RANK_LABELS = {
    RANK_UNAVAILABLE: "unavailable",
    RANK_DEGRADED: "poor",
    RANK_FUNCTIONAL: "fair",
    RANK_CONTENT: "good",
    RANK_EXCELLENT: "excellent",
}

UNCHECKED_LABEL = "unchecked"
UNCHECKED_SCORE = 0.5


@dataclass(frozen=True)
class ScoreWeights:
    """레벨별 가중치 (시도한 레벨만으로 재정규화됨)"""

    basic: float = 0.4
    functional: float = 0.3
    content: float = 0.2
    deep: float = 0.1

    def __post_init__(self):
        if min(self.basic, self.functional, self.content, self.deep) < 0:
            raise ValueError("score weights must be >= 0")
        if self.basic + self.functional + self.content + self.deep <= 0:
            raise ValueError("sum of score weights must be positive")

    @classmethod
    def from_settings(cls) -> "ScoreWeights":
        return cls(
            basic=settings.score_weight_basic,
            functional=settings.score_weight_functional,
            content=settings.score_weight_content,
            deep=settings.score_weight_deep,
        )

    def for_level(self, level: ProbeLevel) -> float:
        return {
            ProbeLevel.BASIC: self.basic,
            ProbeLevel.FUNCTIONAL: self.functional,
            ProbeLevel.CONTENT: self.content,
            ProbeLevel.DEEP: self.deep,
        }[level]


@dataclass(frozen=True)
class ScoreCard:
    """점수 결과"""

    final_score: float
    rank: int
    level: str


@dataclass(frozen=True)
class Scorer:
    """점수 계산기

    Attributes:
        weights: 레벨별 가중치
        degraded_threshold: 가용하더라도 이 점수 미만이면 rank 1로 강등
        excellent_threshold: DEEP 통과 + 이 점수 이상이면 rank 4
        deep_min_score: DEEP 일관성 최소 점수
    """

    weights: ScoreWeights = ScoreWeights()
    degraded_threshold: float = 0.3
    excellent_threshold: float = 0.8
    deep_min_score: float = 0.5

    @classmethod
    def from_settings(cls) -> "Scorer":
        return cls(weights=ScoreWeights.from_settings(), deep_min_score=settings.deep_min_score)

    def final_score(self, result: ProbeResult) -> float:
        """시도한 레벨의 점수만으로 가중 평균

        예: BASIC=1.0, FUNCTIONAL=0.5만 있으면 (0.4*1.0 + 0.3*0.5) / 0.7
        """
        weighted = 0.0
        total_weight = 0.0
        for level, sub_score in result.sub_scores().items():
            if sub_score is None:
                continue
            weight = self.weights.for_level(level)
            weighted += weight * min(1.0, max(0.0, sub_score))
            total_weight += weight

        if total_weight <= 0:
            return 0.0
        return round(weighted / total_weight, 4)

    def rank(self, result: ProbeResult, final_score: float) -> int:
        """이산 등급 (0~4)

        - 0: BASIC에서 실패 (도달 불가)
        - 1: 상위 레벨에서 실패, 또는 가용하지만 점수가 낮음
        - 2: BASIC/FUNCTIONAL 통과
        - 3: CONTENT 통과 (또는 DEEP 통과했지만 우수 기준 미달)
        - 4: DEEP 통과 + 우수 점수
        """
        if not result.available:
            return RANK_UNAVAILABLE if result.level == ProbeLevel.BASIC else RANK_DEGRADED

        if final_score < self.degraded_threshold:
            return RANK_DEGRADED

        if result.level == ProbeLevel.DEEP:
            deep = result.deep_score or 0.0
            if deep >= self.deep_min_score and final_score >= self.excellent_threshold:
                return RANK_EXCELLENT
            return RANK_CONTENT
        if result.level == ProbeLevel.CONTENT:
            return RANK_CONTENT
        return RANK_FUNCTIONAL

    def score(self, result: ProbeResult) -> ScoreCard:
        """점수 계산 (순수 함수)

        Args:
            result: 프로브 결과

        Returns:
            ScoreCard: (final_score, rank, level label)
        """
        if result.status == ProbeStatus.UNKNOWN:
            # 검사하지 못한 소스는 사용 가능한 것으로 간주
            return ScoreCard(UNCHECKED_SCORE, RANK_FUNCTIONAL, UNCHECKED_LABEL)

        final = self.final_score(result)
        rank = self.rank(result, final)
        return ScoreCard(final, rank, RANK_LABELS[rank])


class ReliabilityTracker:
    """소스별 최근 점수 이력과 지수 가중 신뢰도

    새로 프로브한 결과만 기록합니다. 캐시 히트는 기록하지 않으므로
    캐시에서 나온 결과는 같은 신뢰도를 돌려받습니다.
    """

    def __init__(self, recent_weight: Optional[float] = None, history_size: Optional[int] = None):
        self.recent_weight = settings.reliability_recent_weight if recent_weight is None else recent_weight
        self.history_size = settings.reliability_history_size if history_size is None else history_size
        if not 0.0 <= self.recent_weight <= 1.0:
            raise ValueError("recent_weight must be within [0, 1]")
        if self.history_size <= 0:
            raise ValueError("history_size must be positive")

        self._lock = threading.Lock()
        self._history: dict[str, deque[float]] = {}

    def record(self, source_id: str, score: float) -> float:
        """새 점수 기록 후 신뢰도 반환"""
        with self._lock:
            history = self._history.setdefault(source_id, deque(maxlen=self.history_size))
            history.append(score)
            return self._blend(history)

    def current(self, source_id: str, fallback: float) -> float:
        """기록된 이력으로 신뢰도 계산 (이력 없으면 fallback)"""
        with self._lock:
            history = self._history.get(source_id)
            if not history:
                return round(fallback, 4)
            return self._blend(history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def _blend(self, history: deque[float]) -> float:
        it = iter(history)
        value = next(it)
        for score in it:
            value = self.recent_weight * score + (1.0 - self.recent_weight) * value
        return round(value, 4)
