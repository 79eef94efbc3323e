"""FastAPI 앱 팩토리"""
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from sourceprobe.api import health_router, source_status_router
from sourceprobe.api.routes.source_status_routes import validation_error_response
from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import CacheException
from sourceprobe.core.logging import logger
from sourceprobe.engine.cache import ProbeCache
from sourceprobe.engine.cache_adapter import ProbeCacheAdapter
from sourceprobe.engine.orchestrator import SourceCheckOrchestrator
from sourceprobe.probing.http_client import ProbeHttpClient
from sourceprobe.services.impl.redis_store import RedisProbeStore


def build_orchestrator() -> SourceCheckOrchestrator:
    """설정 기반 오케스트레이터 생성 (redis_url이 있으면 Redis 계층 추가)"""
    store = None
    if settings.redis_url:
        try:
            store = RedisProbeStore(settings.redis_url)
        except CacheException as e:
            logger.warning(f"Redis tier disabled: {e.error_code}: {e.message}")

    cache = ProbeCacheAdapter(ProbeCache(), store=store, store_timeout=settings.redis_socket_timeout_s)
    return SourceCheckOrchestrator(http_client=ProbeHttpClient(), cache=cache)


def create_app(orchestrator: Optional[SourceCheckOrchestrator] = None) -> FastAPI:
    """
    FastAPI 앱 생성 (Factory Pattern)

    Args:
        orchestrator: 주입할 오케스트레이터 (테스트용, 없으면 lifespan에서 생성)

    Returns:
        FastAPI 앱 인스턴스
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """애플리케이션 생명주기"""
        logger.info("Starting application...")
        app.state.orchestrator = orchestrator or build_orchestrator()
        logger.info("Application started")
        yield
        logger.info("Shutting down application...")
        try:
            await app.state.orchestrator.close()
        except Exception as e:
            # 종료 훅에서의 예외는 앱 종료를 막지 않도록 로깅만
            logger.warning(f"Shutdown cleanup failed: {type(e).__name__}: {e}")

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location}: {first.get('msg', 'validation error')}"
        logger.warning(f"[API] {message}")
        return validation_error_response(message, "VALIDATION_ERROR")

    # 라우터 등록
    app.include_router(health_router)
    app.include_router(source_status_router)

    return app


# 앱 인스턴스 생성 (uvicorn이 로드할 수 있도록)
app = create_app()


def main() -> None:
    """API 서버 실행 (source-probe 콘솔 스크립트)"""
    uvicorn.run("sourceprobe.app:app", host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
