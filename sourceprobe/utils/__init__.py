"""Utility helpers."""

from .hash_utils import generate_probe_cache_key, hash_string
from .url_utils import (
    KEYWORD_PLACEHOLDER,
    build_search_url,
    extract_base_url,
    extract_hostname,
    has_keyword_placeholder,
    normalize_keyword,
)

__all__ = [
    "KEYWORD_PLACEHOLDER",
    "build_search_url",
    "extract_base_url",
    "extract_hostname",
    "has_keyword_placeholder",
    "normalize_keyword",
    "generate_probe_cache_key",
    "hash_string",
]
