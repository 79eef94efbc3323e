"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Fake 주입 (FakeHttpClient, FakeContentMatcher)

금지:
- 실제 네트워크 / Redis 접근
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sourceprobe.engine.models import SourceDescriptor  # noqa: E402
from sourceprobe.probing.http_client import HttpResponse  # noqa: E402
from sourceprobe.utils.url_utils import extract_hostname  # noqa: E402


SEARCH_BODY = (
    "<html><head><title>Search results</title></head>"
    "<body><div class='result'>item one</div><div class='result'>item two</div></body></html>"
)


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


@dataclass
class FakeRoute:
    """호스트(또는 URL)별 응답 정의"""

    status: int = 200
    body: str = SEARCH_BODY
    delay: float = 0.0
    error: Optional[Exception] = None


class FakeHttpClient:
    """Prober용 가짜 HTTP 클라이언트

    - URL 정확 일치 → 호스트 일치 → default 순서로 응답 결정
    - 호출 기록과 최대 동시 요청 수를 남김
    """

    def __init__(self, default: Optional[FakeRoute] = None):
        self.default = default or FakeRoute()
        self.routes: dict[str, FakeRoute] = {}
        self.calls: list[str] = []
        self.calls_by_host: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def route(self, host_or_url: str, **kwargs) -> "FakeHttpClient":
        self.routes[host_or_url] = FakeRoute(**kwargs)
        return self

    def _resolve(self, url: str) -> FakeRoute:
        if url in self.routes:
            return self.routes[url]
        return self.routes.get(extract_hostname(url) or "", self.default)

    async def fetch(self, url: str, *, timeout_s: float, method: str = "GET") -> HttpResponse:
        route = self._resolve(url)
        self.calls.append(url)
        self.calls_by_host[extract_hostname(url)] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if route.delay:
                await asyncio.sleep(route.delay)
            if route.error is not None:
                raise route.error
            return HttpResponse(
                status_code=route.status,
                text=route.body,
                url=url,
                elapsed_ms=route.delay * 1000,
            )
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


class FakeContentMatcher:
    """키워드별 (matched, estimated) 고정 응답 매처"""

    def __init__(self, matched: bool = True, estimated: int = 5, by_keyword: Optional[dict] = None):
        self.matched = matched
        self.estimated = estimated
        self.by_keyword = by_keyword or {}
        self.calls: list[str] = []

    def match(self, html_body: str, keyword: str) -> tuple[bool, int]:
        self.calls.append(keyword)
        return self.by_keyword.get(keyword, (self.matched, self.estimated))


def make_source(source_id: str, host: Optional[str] = None, **kwargs) -> SourceDescriptor:
    """테스트용 SourceDescriptor (https://{host}/search?q={keyword})"""
    host = host or f"{source_id}.example.com"
    kwargs.setdefault("name", source_id.upper())
    return SourceDescriptor(id=source_id, url_template=f"https://{host}/search?q={{keyword}}", **kwargs)


@pytest.fixture
def fake_http() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def fake_matcher() -> FakeContentMatcher:
    return FakeContentMatcher()
