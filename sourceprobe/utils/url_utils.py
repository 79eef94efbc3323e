"""URL 템플릿 유틸리티"""
import re
from typing import Optional
from urllib.parse import quote, urlparse

KEYWORD_PLACEHOLDER = "{keyword}"


def has_keyword_placeholder(url_template: str) -> bool:
    """URL 템플릿에 {keyword} placeholder가 있는지 확인"""
    return bool(url_template) and KEYWORD_PLACEHOLDER in url_template


def build_search_url(url_template: str, keyword: str) -> str:
    """
    템플릿의 {keyword}를 URL 인코딩된 키워드로 치환

    Examples:
        >>> build_search_url("https://example.com/search?q={keyword}", "ABC 123")
        'https://example.com/search?q=ABC%20123'

    Args:
        url_template: {keyword}를 포함한 URL 템플릿
        keyword: 검색어

    Returns:
        검색 URL
    """
    return url_template.replace(KEYWORD_PLACEHOLDER, quote(keyword, safe=""))


def extract_base_url(url_template: str) -> Optional[str]:
    """
    URL 템플릿에서 키워드를 제거한 기본 도메인 URL 추출

    Examples:
        >>> extract_base_url("https://www.example.com/search/{keyword}?page=1")
        'https://www.example.com'
        >>> extract_base_url("not a url {keyword}")
        None

    Args:
        url_template: URL 템플릿

    Returns:
        "scheme://host[:port]" 또는 None (파싱 불가)
    """
    if not url_template:
        return None

    try:
        parsed = urlparse(url_template.replace(KEYWORD_PLACEHOLDER, ""))
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return None
        return f"{parsed.scheme}://{parsed.netloc}"
    except ValueError:
        return None


def extract_hostname(url: str) -> Optional[str]:
    """URL에서 hostname 추출 (실패 시 None)"""
    if not url:
        return None
    try:
        return urlparse(url.replace(KEYWORD_PLACEHOLDER, "")).hostname
    except ValueError:
        return None


def normalize_keyword(keyword: str) -> str:
    """
    캐시 버킷용 키워드 정규화

    - 앞뒤 공백 제거, 소문자화
    - 다중 공백을 단일 공백으로

    Examples:
        >>> normalize_keyword("  MIMK-186 ")
        'mimk-186'
    """
    if not keyword:
        return ""
    return re.sub(r"\s+", " ", keyword.strip().lower())
