"""프로브용 HTTP 클라이언트 (curl_cffi)

- 프로브마다 AsyncSession을 만들면 TLS/커넥션 오버헤드가 커지므로
  오케스트레이터 인스턴스 단위로 세션을 재사용합니다.
- 실패는 예외 계층(NetworkTimeoutException 등)으로 변환해 던지고,
  ProbeResult로의 변환은 Prober가 담당합니다.
- 앱 종료 시 close()로 정리합니다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from time import monotonic
from typing import Dict, Optional, Protocol

from curl_cffi import CurlECode, CurlError
from curl_cffi.requests import AsyncSession

from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import (
    NetworkException,
    NetworkTimeoutException,
    RedirectLoopException,
)
from sourceprobe.core.logging import logger, sanitize_for_log


_TIMEOUT_CODES = {int(CurlECode.OPERATION_TIMEDOUT)}
_REDIRECT_CODES = {int(CurlECode.TOO_MANY_REDIRECTS)}


@dataclass(frozen=True)
class HttpResponse:
    """HTTP 응답 요약"""

    status_code: int
    text: str
    url: str
    elapsed_ms: float


class HttpClient(Protocol):
    """Prober가 사용하는 HTTP 클라이언트 인터페이스"""

    async def fetch(self, url: str, *, timeout_s: float, method: str = "GET") -> HttpResponse:
        """요청 실행

        Raises:
            NetworkTimeoutException: 타임아웃
            NetworkException: 연결 실패
            RedirectLoopException: 리다이렉트 루프
        """
        ...

    async def close(self) -> None:
        ...


class ProbeHttpClient:
    def __init__(
        self,
        impersonate: Optional[str] = None,
        max_clients: Optional[int] = None,
        max_redirects: Optional[int] = None,
    ) -> None:
        self._lock = asyncio.Lock()
        self._session: Optional[AsyncSession] = None
        self._impersonate = impersonate or settings.http_impersonate
        self._max_clients = max_clients or settings.http_max_clients
        self._max_redirects = max_redirects or settings.http_max_redirects

    async def _ensure_session(self) -> AsyncSession:
        async with self._lock:
            if self._session is not None:
                return self._session
            self._session = AsyncSession(
                impersonate=self._impersonate,
                headers=self.default_headers(),
                allow_redirects=True,
                max_clients=self._max_clients,
                trust_env=False,
            )
            return self._session

    def default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": settings.http_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "zh-CN,zh;q=0.8,en-US;q=0.6,en;q=0.5",
            "Cache-Control": "no-cache",
        }

    async def fetch(self, url: str, *, timeout_s: float, method: str = "GET") -> HttpResponse:
        sess = await self._ensure_session()
        started = monotonic()
        try:
            resp = await sess.request(
                method,
                url,
                timeout=timeout_s,
                allow_redirects=True,
                max_redirects=self._max_redirects,
            )
        except CurlError as e:
            code = getattr(e, "code", None)
            code = int(code) if code is not None else None
            logger.info(f"[HTTP_CLIENT] {method} failed: url={sanitize_for_log(url)} code={code} {type(e).__name__}")
            if code in _TIMEOUT_CODES:
                raise NetworkTimeoutException(url, int(timeout_s * 1000)) from e
            if code in _REDIRECT_CODES:
                raise RedirectLoopException(url) from e
            raise NetworkException(url, str(e) or type(e).__name__) from e

        elapsed_ms = (monotonic() - started) * 1000
        status = getattr(resp, "status_code", 0) or 0
        text = getattr(resp, "text", "") or ""
        final_url = str(getattr(resp, "url", url) or url)
        return HttpResponse(status_code=status, text=text, url=final_url, elapsed_ms=elapsed_ms)

    async def close(self) -> None:
        async with self._lock:
            if self._session is None:
                return
            try:
                await self._session.close()
            except Exception as e:
                logger.debug(f"[HTTP_CLIENT] close failed: {type(e).__name__}: {e}")
            self._session = None
