"""API routes package."""

from .dependencies import get_orchestrator
from .health_routes import router as health_router
from .source_status_routes import router as source_status_router

__all__ = ["health_router", "source_status_router", "get_orchestrator"]
