"""라우트 공용 의존성"""
from fastapi import HTTPException, Request

from sourceprobe.engine.orchestrator import SourceCheckOrchestrator


def get_orchestrator(request: Request) -> SourceCheckOrchestrator:
    """lifespan에서 app.state에 등록한 오케스트레이터 반환"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Source check engine is not initialized")
    return orchestrator
