"""Probing layer (HTTP client, content matcher, tiered prober).

공개 API는 이 파일에서만 export합니다.
"""

from .content_matcher import ContentMatcher, KeywordContentMatcher, MatchDetails
from .http_client import HttpClient, HttpResponse, ProbeHttpClient
from .prober import Prober

__all__ = [
    "ContentMatcher",
    "KeywordContentMatcher",
    "MatchDetails",
    "HttpClient",
    "HttpResponse",
    "ProbeHttpClient",
    "Prober",
]
