"""커스텀 예외 정의 (Structured Exception Hierarchy)"""
from typing import Any, Optional


# 기본 예외 클래스
class SourceProbeException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# 유효성 검증 관련 예외 (검사 시작 전에 호출 전체를 거절)
class ValidationException(SourceProbeException):
    """유효성 검증 예외"""
    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                        details or {"field": field, "reason": reason})


class InvalidSourceException(ValidationException):
    """잘못된 검색 소스 정의 (placeholder 누락 등)"""
    def __init__(self, source_id: str, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("source", f"{reason} (source: {source_id})",
                        details or {"source_id": source_id, "reason": reason})
        self.error_code = "INVALID_SOURCE"


class InvalidOptionsException(ValidationException):
    """잘못된 검사 옵션"""
    def __init__(self, option: str, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(option, reason, details)
        self.error_code = "INVALID_OPTIONS"


# 프로브 관련 예외 - Prober 내부에서만 발생하고 ProbeResult로 변환됨
class ProbeException(SourceProbeException):
    """프로브 관련 예외의 기본 클래스"""
    def __init__(self, message: str, error_code: str = "PROBE_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "PROBE_ERROR", details)


class NetworkTimeoutException(ProbeException):
    """네트워크 타임아웃 예외"""
    def __init__(self, url: str, timeout_ms: int, details: Optional[dict[str, Any]] = None):
        message = f"Request to '{url}' timed out after {timeout_ms}ms"
        super().__init__(message, "NETWORK_TIMEOUT",
                        details or {"url": url, "timeout_ms": timeout_ms})


class NetworkException(ProbeException):
    """연결 실패 (DNS, 연결 거부, 리셋)"""
    def __init__(self, url: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Connection to '{url}' failed: {reason}"
        super().__init__(message, "NETWORK_ERROR", details or {"url": url, "reason": reason})


class HttpStatusException(ProbeException):
    """HTTP 오류 상태 코드 (>= 400)"""
    def __init__(self, url: str, status_code: int, details: Optional[dict[str, Any]] = None):
        message = f"HTTP {status_code} from '{url}'"
        super().__init__(message, "HTTP_STATUS_ERROR",
                        details or {"url": url, "status_code": status_code})
        self.status_code = status_code


class RedirectLoopException(ProbeException):
    """리다이렉트 루프"""
    def __init__(self, url: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"Redirect loop at '{url}'", "REDIRECT_LOOP", details or {"url": url})


class EmptyResponseException(ProbeException):
    """빈 응답 본문"""
    def __init__(self, url: str, length: int, details: Optional[dict[str, Any]] = None):
        message = f"Empty or truncated response from '{url}' ({length} chars)"
        super().__init__(message, "EMPTY_RESPONSE", details or {"url": url, "length": length})


class ErrorPageException(ProbeException):
    """정상 상태 코드지만 오류/차단 페이지"""
    def __init__(self, url: str, marker: str, details: Optional[dict[str, Any]] = None):
        message = f"Error page detected at '{url}' (marker: {marker})"
        super().__init__(message, "ERROR_PAGE", details or {"url": url, "marker": marker})


class ContentMismatchException(ProbeException):
    """키워드와 결과 내용이 일치하지 않음"""
    def __init__(self, keyword: str, reason: str = "keyword not matched", details: Optional[dict[str, Any]] = None):
        super().__init__(f"Content check failed: {reason}", "CONTENT_MISMATCH",
                        details or {"keyword": keyword, "reason": reason})


class MalformedTemplateException(ProbeException):
    """URL 템플릿으로 유효한 URL을 만들 수 없음"""
    def __init__(self, template: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Malformed url template: {reason}"
        super().__init__(message, "MALFORMED_TEMPLATE",
                        details or {"template": template, "reason": reason})


# 오케스트레이터 관련 예외
class OrchestratorTimeoutException(SourceProbeException):
    """전체 검사 deadline 초과 (부분 결과는 그대로 반환됨)"""
    def __init__(self, budget_ms: float, pending: int, details: Optional[dict[str, Any]] = None):
        message = f"Check deadline of {budget_ms:.0f}ms exceeded with {pending} source(s) pending"
        super().__init__(message, "ORCHESTRATOR_TIMEOUT",
                        details or {"budget_ms": budget_ms, "pending": pending})


class EngineInitializationException(SourceProbeException):
    """캐시/워커 풀 초기화 실패"""
    def __init__(self, component: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Failed to initialize {component}: {reason}"
        super().__init__(message, "ENGINE_INIT_FAILED",
                        details or {"component": component, "reason": reason})


# 캐시 관련 예외
class CacheException(SourceProbeException):
    """캐시 관련 예외"""
    def __init__(self, message: str, error_code: str = "CACHE_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "CACHE_ERROR", details)


class CacheConnectionException(CacheException):
    """캐시 연결 실패"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Failed to connect to cache: {reason}"
        super().__init__(message, "CACHE_CONNECTION_ERROR", details)


class CacheSerializationException(CacheException):
    """캐시 직렬화/역직렬화 오류"""
    def __init__(self, operation: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Cache {operation} failed: {reason}"
        super().__init__(message, "CACHE_SERIALIZATION_ERROR",
                        details or {"operation": operation, "reason": reason})
