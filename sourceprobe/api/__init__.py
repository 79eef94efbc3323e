"""API 엔드포인트 패키지 - export only."""

from .routes import get_orchestrator, health_router, source_status_router

__all__ = ["health_router", "source_status_router", "get_orchestrator"]
