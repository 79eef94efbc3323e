"""Source Status Routes - HTTP → Engine translator

요청 스키마를 엔진 타입으로 바꾸고 SourceCheckOrchestrator에 위임만 합니다.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from sourceprobe.core.exceptions import ValidationException
from sourceprobe.core.logging import logger, sanitize_for_log
from sourceprobe.engine.orchestrator import SourceCheckOrchestrator, summarize
from sourceprobe.engine.selector import select_sources
from sourceprobe.schemas.source_status_schema import (
    CheckStatsResponse,
    CheckSummary,
    SourceStatusCheckRequest,
    SourceStatusCheckResponse,
    SourceStatusItem,
)

from .dependencies import get_orchestrator

router = APIRouter(prefix="/api/source-status", tags=["source-status"])


def validation_error_response(message: str, error_code: str) -> JSONResponse:
    body = SourceStatusCheckResponse(success=False, message=message, error_code=error_code)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json", by_alias=True))


@router.post("/check", response_model=SourceStatusCheckResponse)
async def check_sources(
    request: SourceStatusCheckRequest,
    orchestrator: SourceCheckOrchestrator = Depends(get_orchestrator),
):
    """검색 소스 상태 검사

    Flow:
        1. 요청 → SourceDescriptor / CheckOptions 변환
        2. 엔진에서 검사 후 선택 조건으로 필터링/정렬
        3. 요약과 함께 반환
    """
    logger.info(
        f"[API] Check request: sources={len(request.sources)}, "
        f"keyword='{sanitize_for_log(request.keyword)}', level={request.options.level}"
    )

    sources = [source.to_descriptor() for source in request.sources]
    options = request.to_check_options()

    try:
        checked = await orchestrator.check(sources, options)
    except ValidationException as e:
        logger.warning(f"[API] Validation failed: {e.error_code}: {e.message}")
        return validation_error_response(e.message, e.error_code)

    # 요약은 검사한 전체 소스 기준, results는 선택 조건을 통과한 소스만
    results = select_sources(checked, options.to_select_options())
    summary = summarize(checked, request.keyword)
    return SourceStatusCheckResponse(
        success=True,
        summary=CheckSummary(**summary),
        results=[SourceStatusItem.from_aggregated(item) for item in results],
        message=f"Checked {len(sources)} source(s), {summary['available']} available",
    )


@router.get("/stats", response_model=CheckStatsResponse)
async def get_stats(orchestrator: SourceCheckOrchestrator = Depends(get_orchestrator)):
    """검사 통계"""
    return CheckStatsResponse(**orchestrator.stats())
