"""해싱 유틸리티"""
import hashlib


def hash_string(text: str) -> str:
    """
    문자열을 MD5 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        MD5 해시 문자열
    """
    return hashlib.md5(text.encode()).hexdigest()


def generate_probe_cache_key(source_id: str, level: str, keyword_bucket: str) -> str:
    """
    프로브 결과용 Redis 캐시 키 생성

    source_id와 키워드 버킷은 임의 문자열이므로 해시하여 키 길이/문자를 고정합니다.

    Args:
        source_id: 검색 소스 ID
        level: 검사 레벨 이름 (basic, functional, ...)
        keyword_bucket: "none" 또는 정규화된 키워드

    Returns:
        Redis 캐시 키
    """
    return f"probe:{level}:{hash_string(source_id)}:{hash_string(keyword_bucket)}"
