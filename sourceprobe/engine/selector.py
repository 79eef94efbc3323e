"""Selector - Filters and ranks aggregated results for the caller

Pure and stable: no I/O, output depends only on the inputs.
"""

from __future__ import annotations

import math
from typing import Iterable

from .models import AggregatedSourceResult, SelectOptions
from .scorer import RANK_DEGRADED


def _sort_key(item: AggregatedSourceResult, options: SelectOptions) -> tuple:
    key: list = [-item.availability_rank]
    if options.prioritize_content_match:
        key.append(-(item.content_score or 0.0))
    key.append(-item.reliability)
    if options.prefer_fast:
        rt = item.response_time_ms
        key.append(rt if rt is not None else math.inf)
    # 최종 tie-break: 내장 소스 우선, priority 오름차순, id
    key.extend([0 if item.source.is_builtin else 1, item.source.priority, item.source_id])
    return tuple(key)


def select_sources(
    results: Iterable[AggregatedSourceResult],
    options: SelectOptions | None = None,
) -> list[AggregatedSourceResult]:
    """결과 필터링/정렬/절단

    1. include_partial이 아니면 rank <= 1 제거
    2. reliability < min_reliability 제거
    3. 정렬: rank desc → (content_score desc) → reliability desc
       → (response_time asc) → builtin 우선 → priority asc
    4. max_sources로 절단

    Args:
        results: 오케스트레이터 결과
        options: 선택 옵션

    Returns:
        list[AggregatedSourceResult]: 정렬된 결과
    """
    options = options or SelectOptions()

    filtered = [
        item
        for item in results
        if (options.include_partial or item.availability_rank > RANK_DEGRADED)
        and item.reliability >= options.min_reliability
    ]

    ordered = sorted(filtered, key=lambda item: _sort_key(item, options))

    if options.max_sources is not None:
        ordered = ordered[: options.max_sources]
    return ordered
