"""Probe Strategy - Escalation and Failure Classification

Decides which levels a probe walks through, how many requests each level
costs, and how a failure maps onto a ProbeStatus.
"""

import asyncio
from typing import Optional

from sourceprobe.core.exceptions import (
    NetworkException,
    NetworkTimeoutException,
    ProbeException,
)

from .result import ProbeLevel, ProbeStatus


# 정상 상태 코드로 반환되는 오류/차단 페이지 문구 (본문 앞부분만 검사)
_ERROR_PAGE_MARKERS = (
    "404 not found",
    "page not found",
    "403 forbidden",
    "access denied",
    "502 bad gateway",
    "503 service unavailable",
    "service temporarily unavailable",
    "domain is for sale",
    "this domain has expired",
    "verify you are human",
    "just a moment...",
)

_ERROR_PAGE_SCAN_CHARS = 4096


class ProbeStrategy:
    """프로브 전략 결정

    Usage:
        strategy = ProbeStrategy()

        for level in strategy.levels_to_attempt(ProbeLevel.CONTENT):
            ...  # BASIC → FUNCTIONAL → CONTENT, 첫 실패에서 중단

        try:
            ...
        except Exception as e:
            status = strategy.status_for_error(e)
    """

    @staticmethod
    def levels_to_attempt(requested: ProbeLevel) -> list[ProbeLevel]:
        """요청 레벨까지 순서대로 시도할 레벨 목록

        Args:
            requested: 요청 레벨

        Returns:
            list[ProbeLevel]: BASIC부터 requested까지
        """
        return [level for level in ProbeLevel if level <= requested]

    @staticmethod
    def request_count(requested: ProbeLevel, synthetic_keywords: int) -> int:
        """요청 레벨을 끝까지 검사하는 데 필요한 최대 HTTP 요청 수

        - BASIC: 기본 도메인 1회
        - FUNCTIONAL/CONTENT: + 검색 URL 1회 (CONTENT는 같은 본문 재사용)
        - DEEP: + 합성 키워드별 1회

        Args:
            requested: 요청 레벨
            synthetic_keywords: DEEP 합성 키워드 수

        Returns:
            int: 요청 수
        """
        if requested == ProbeLevel.BASIC:
            return 1
        if requested in (ProbeLevel.FUNCTIONAL, ProbeLevel.CONTENT):
            return 2
        return 2 + synthetic_keywords

    @staticmethod
    def status_for_error(error: BaseException) -> ProbeStatus:
        """예외 유형 → 프로브 상태 매핑

        - 타임아웃 (NetworkTimeoutException, asyncio.TimeoutError): timeout
        - 연결 실패 (NetworkException): offline
        - 그 외 (HTTP 오류, 오류 페이지, 내용 불일치, 예기치 못한 오류): error

        Args:
            error: 발생한 예외

        Returns:
            ProbeStatus: 프로브 상태
        """
        if isinstance(error, (NetworkTimeoutException, asyncio.TimeoutError, TimeoutError)):
            return ProbeStatus.TIMEOUT
        if isinstance(error, NetworkException):
            return ProbeStatus.OFFLINE
        return ProbeStatus.ERROR

    @staticmethod
    def error_code_for(error: BaseException) -> str:
        """예외 → 오류 코드"""
        if isinstance(error, ProbeException):
            return error.error_code
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return "NETWORK_TIMEOUT"
        return "UNEXPECTED_ERROR"

    @staticmethod
    def find_error_page_marker(body: str) -> Optional[str]:
        """본문 앞부분에서 오류/차단 페이지 문구 탐색

        Args:
            body: 응답 본문

        Returns:
            Optional[str]: 발견된 문구, 없으면 None
        """
        if not body:
            return None
        head = body[:_ERROR_PAGE_SCAN_CHARS].lower()
        for marker in _ERROR_PAGE_MARKERS:
            if marker in head:
                return marker
        return None
