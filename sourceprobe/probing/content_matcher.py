"""Content matching capability used by the CONTENT/DEEP probe levels.

The engine only depends on the `ContentMatcher` protocol. `KeywordContentMatcher`
is the default collaborator: keyword-presence heuristics over the raw page
text, with selectolax used only to read the page title.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from selectolax.lexbor import LexborHTMLParser

from sourceprobe.core.logging import logger


class ContentMatcher(Protocol):
    """검색 결과 페이지와 키워드의 관련성 추정 인터페이스"""

    def match(self, html_body: str, keyword: str) -> tuple[bool, int]:
        """관련성 추정

        Args:
            html_body: 검색 결과 페이지 HTML
            keyword: 검색 키워드

        Returns:
            (matched, estimated_results)
        """
        ...


# 품번 형식 키워드 (예: ABC-123, abc123)
_CODE_KEYWORD_RE = re.compile(r"^([A-Za-z]+)-?(\d+)$")

_RESULT_INDICATORS = (
    re.compile(r"result", re.IGNORECASE),
    re.compile(r"找到.*?结果"),
    re.compile(r"共.*?条"),
    re.compile(r"<div[^>]*class=[^>]*result", re.IGNORECASE),
)

_NO_RESULT_INDICATORS = (
    re.compile(r"no\s+results?", re.IGNORECASE),
    re.compile(r"not\s+found", re.IGNORECASE),
    re.compile(r"nothing\s+found", re.IGNORECASE),
    re.compile(r"没有.*?结果"),
    re.compile(r"未找到"),
    re.compile(r"暂无.*?内容"),
)


@dataclass
class MatchDetails:
    """매칭 상세 정보"""

    exact_match: bool = False
    title_match: bool = False
    partial_match: bool = False
    no_result_page: bool = False
    result_count: int = 0
    quality_score: int = 0
    keyword_positions: list[int] = field(default_factory=list)


class KeywordContentMatcher:
    """키워드 존재 여부 기반 휴리스틱 매처

    점수 구성 (0~100):
    - 본문 정확 일치 +50, 제목 일치 +30, 품번 패턴 일치 +40
    - 부분 토큰 일치 최대 +30 (정확 일치가 없을 때만)
    - 결과 목록 지표 최대 +20
    - "결과 없음" 페이지 -30
    """

    def __init__(self, min_partial_score: int = 20, max_positions: int = 50):
        self.min_partial_score = min_partial_score
        self.max_positions = max_positions

    def match(self, html_body: str, keyword: str) -> tuple[bool, int]:
        details = self.analyze(html_body, keyword)
        matched = details.exact_match or (details.partial_match and details.quality_score > self.min_partial_score)
        return matched, details.result_count

    def analyze(self, html_body: str, keyword: str) -> MatchDetails:
        """페이지 분석

        Args:
            html_body: HTML 문자열
            keyword: 검색 키워드

        Returns:
            MatchDetails: 매칭 상세
        """
        details = MatchDetails()
        if not html_body or not keyword or not keyword.strip():
            return details

        keyword = keyword.strip()
        lower_body = html_body.lower()
        lower_keyword = keyword.lower()
        score = 0

        # 1. 정확 일치
        position = lower_body.find(lower_keyword)
        if position != -1:
            details.exact_match = True
            score += 50
            while position != -1 and len(details.keyword_positions) < self.max_positions:
                details.keyword_positions.append(position)
                position = lower_body.find(lower_keyword, position + len(lower_keyword))

        # 2. 제목 일치
        title = self._extract_title(html_body)
        if title and lower_keyword in title.lower():
            details.title_match = True
            score += 30

        # 3. 품번 형식 (하이픈 유무 허용)
        code = _CODE_KEYWORD_RE.match(keyword)
        if code:
            pattern = f"{code.group(1)}-?{code.group(2)}"
            matches = re.findall(pattern, html_body, re.IGNORECASE)
            if matches:
                details.exact_match = True
                details.result_count = len(matches)
                score += 40

        # 4. 부분 일치
        if not details.exact_match and len(keyword) > 3:
            parts = [p for p in re.split(r"[-_\s]+", keyword) if len(p) > 2]
            partial_matches = sum(1 for p in parts if p.lower() in lower_body)
            if partial_matches > 0:
                details.partial_match = True
                score += min(partial_matches * 10, 30)

        # 5. 결과 목록 지표
        indicator_count = sum(len(indicator.findall(html_body)) for indicator in _RESULT_INDICATORS)
        if indicator_count > 0:
            details.result_count = max(details.result_count, indicator_count)
            score += min(indicator_count * 5, 20)

        # 6. "결과 없음" 페이지
        if any(indicator.search(html_body) for indicator in _NO_RESULT_INDICATORS):
            details.no_result_page = True
            score = max(0, score - 30)

        details.quality_score = min(100, max(0, score))
        return details

    @staticmethod
    def _extract_title(html_body: str) -> Optional[str]:
        try:
            node = LexborHTMLParser(html_body).css_first("title")
        except Exception as e:
            logger.debug(f"[MATCHER] Title parse failed: {type(e).__name__}: {e}")
            return None
        if node is None:
            return None
        return node.text(strip=True) or None
