"""헬스 체크 엔드포인트"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from sourceprobe import __version__
from sourceprobe.core.logging import logger
from sourceprobe.engine.orchestrator import SourceCheckOrchestrator
from sourceprobe.schemas.source_status_schema import HealthResponse

from .dependencies import get_orchestrator

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: SourceCheckOrchestrator = Depends(get_orchestrator)):
    """
    헬스 체크 엔드포인트

    - 엔진 상태
    - 캐시 크기 / 진행 중인 프로브
    - Redis 계층 상태 (설정된 경우)
    """
    try:
        engine_health = await orchestrator.health()
    except Exception as e:
        logger.error(f"[API] Health check failed: {type(e).__name__}: {e}")
        engine_health = {"status": "error", "cache": {}}

    cache = dict(engine_health.get("cache") or {})
    cache["active_probes"] = engine_health.get("active_probes", 0)
    cache["store_healthy"] = engine_health.get("store_healthy")

    return HealthResponse(
        status=engine_health.get("status", "error"),
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        cache=cache,
    )


@router.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "service": "source-probe",
        "version": __version__,
        "docs": "/docs",
    }
