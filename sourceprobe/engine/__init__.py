"""Engine Layer - Probe results, caching, scoring and selection

This package provides the value types and pure building blocks of the engine:
- ProbeResult / ProbeLevel / ProbeStatus: Standardized probe outcome
- ProbeCache / ProbeCacheAdapter: TTL + LRU cache and its async two-tier facade
- Scorer / ReliabilityTracker: Final score, rank and historical reliability
- select_sources: Filtering and ranking for the caller
- BudgetManager: Outer deadline and per-probe timeout

The entry point, SourceCheckOrchestrator, lives in `sourceprobe.engine.orchestrator`
because it depends on the probing layer, which itself imports these types.
"""

from .budget import BudgetConfig, BudgetManager
from .cache import CacheKey, ProbeCache, TtlPolicy
from .cache_adapter import ProbeCacheAdapter, ProbeStore
from .models import (
    AggregatedSourceResult,
    CheckOptions,
    ProgressEvent,
    SelectOptions,
    SourceDescriptor,
    validate_sources,
)
from .result import ProbeLevel, ProbeResult, ProbeStatus
from .scorer import ReliabilityTracker, ScoreCard, Scorer, ScoreWeights
from .selector import select_sources
from .strategy import ProbeStrategy

__all__ = [
    "BudgetConfig",
    "BudgetManager",
    "CacheKey",
    "ProbeCache",
    "TtlPolicy",
    "ProbeCacheAdapter",
    "ProbeStore",
    "AggregatedSourceResult",
    "CheckOptions",
    "ProgressEvent",
    "SelectOptions",
    "SourceDescriptor",
    "validate_sources",
    "ProbeLevel",
    "ProbeResult",
    "ProbeStatus",
    "ReliabilityTracker",
    "ScoreCard",
    "Scorer",
    "ScoreWeights",
    "select_sources",
    "ProbeStrategy",
]
