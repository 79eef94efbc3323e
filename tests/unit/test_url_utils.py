"""URL / 해시 유틸리티 테스트"""

from __future__ import annotations

from sourceprobe.utils.hash_utils import generate_probe_cache_key, hash_string
from sourceprobe.utils.url_utils import (
    build_search_url,
    extract_base_url,
    extract_hostname,
    has_keyword_placeholder,
    normalize_keyword,
)


def test_has_keyword_placeholder():
    assert has_keyword_placeholder("https://x.com/s?q={keyword}") is True
    assert has_keyword_placeholder("https://x.com/s?q=") is False
    assert has_keyword_placeholder("") is False


def test_build_search_url_encodes_keyword():
    assert build_search_url("https://x.com/search/{keyword}", "a b/c") == "https://x.com/search/a%20b%2Fc"
    assert build_search_url("https://x.com/?q={keyword}", "한글") == "https://x.com/?q=%ED%95%9C%EA%B8%80"


def test_extract_base_url():
    assert extract_base_url("https://www.x.com/search/{keyword}?page=1") == "https://www.x.com"
    assert extract_base_url("http://x.com:8080/{keyword}") == "http://x.com:8080"
    assert extract_base_url("ftp://x.com/{keyword}") is None
    assert extract_base_url("{keyword}") is None
    assert extract_base_url("") is None


def test_extract_hostname():
    assert extract_hostname("https://Sub.X.com/{keyword}") == "sub.x.com"
    assert extract_hostname("") is None


def test_normalize_keyword():
    assert normalize_keyword("  MIMK-186 ") == "mimk-186"
    assert normalize_keyword("a   b\tc") == "a b c"
    assert normalize_keyword("") == ""


def test_probe_cache_key_is_stable_and_hashed():
    key = generate_probe_cache_key("javbus", "content", "mimk-186")

    assert key == f"probe:content:{hash_string('javbus')}:{hash_string('mimk-186')}"
    assert key == generate_probe_cache_key("javbus", "content", "mimk-186")
    assert key != generate_probe_cache_key("javbus", "content", "none")
