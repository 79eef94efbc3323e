"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 프로브 타임아웃 (원본 검사기: 기본 8s, 1s~30s 범위)
    probe_default_timeout_ms: int = 8000
    probe_min_timeout_ms: int = 1000
    probe_max_timeout_ms: int = 30000

    # BASIC 점수: fast_threshold 이하면 1.0, 이후 타임아웃까지 선형 감소
    probe_fast_threshold_ms: int = 2000
    probe_min_basic_score: float = 0.3

    # 동시성 (워커 풀 크기)
    probe_max_concurrency: int = 5
    probe_max_concurrency_limit: int = 10

    # 전체 검사 예산 (호출자가 deadline을 주지 않은 경우)
    check_total_budget_ms: int = 30000
    check_min_remaining_ms: int = 100

    # 캐시
    cache_max_entries: int = 1000
    cache_ttl_basic_s: float = 600.0  # 도메인 단위라 길게
    cache_ttl_functional_s: float = 300.0
    cache_ttl_content_s: float = 120.0  # 키워드 의존이라 짧게
    cache_ttl_deep_s: float = 120.0

    # 상태별 TTL 배수 (실패 결과는 더 빨리 만료)
    cache_ttl_multiplier_online: float = 1.0
    cache_ttl_multiplier_offline: float = 0.5
    cache_ttl_multiplier_timeout: float = 0.3
    cache_ttl_multiplier_error: float = 0.2

    # 점수 가중치
    score_weight_basic: float = 0.4
    score_weight_functional: float = 0.3
    score_weight_content: float = 0.2
    score_weight_deep: float = 0.1

    # 신뢰도 (최근 점수 가중치, 보관 이력 수)
    reliability_recent_weight: float = 0.7
    reliability_history_size: int = 10

    # DEEP 검증
    deep_synthetic_keywords: list[str] = ["test", "001", "sample"]
    deep_min_score: float = 0.5

    # FUNCTIONAL 검증: 본문 최소 길이
    functional_min_body_length: int = 32

    # 기본 검사 키워드 (warmup 등)
    probe_default_keyword: str = "test"

    # HTTP
    http_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 SourceProbe/1.0"
    http_impersonate: str = "chrome110"
    http_max_clients: int = 20
    http_max_redirects: int = 10

    # Redis (빈 값이면 2차 캐시 비활성화)
    redis_url: str = ""
    redis_socket_timeout_s: float = 0.5

    # API
    api_title: str = "Search Source Probe"
    api_version: str = "1.0.0"
    api_description: str = "검색 소스의 가용성을 단계별로 검사하고 순위를 매깁니다."
    api_check_max_sources: int = 100
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # 로깅
    log_level: str = "INFO"

    @field_validator(
        "probe_default_timeout_ms",
        "probe_min_timeout_ms",
        "probe_max_timeout_ms",
        "probe_fast_threshold_ms",
        "check_total_budget_ms",
    )
    @classmethod
    def validate_positive_ms(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts and budgets must be positive")
        return v

    @field_validator("probe_max_concurrency", "probe_max_concurrency_limit", "cache_max_entries")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("concurrency and cache size must be positive")
        return v

    @field_validator(
        "score_weight_basic",
        "score_weight_functional",
        "score_weight_content",
        "score_weight_deep",
    )
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if v < 0:
            raise ValueError("score weights must be >= 0")
        return v

    @field_validator("reliability_recent_weight", "probe_min_basic_score", "deep_min_score")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be within [0, 1]")
        return v

    @field_validator("deep_synthetic_keywords")
    @classmethod
    def validate_synthetic_keywords(cls, v: list[str]) -> list[str]:
        keywords = [k.strip() for k in v if k and k.strip()]
        if not 2 <= len(keywords) <= 3:
            raise ValueError("deep_synthetic_keywords must hold 2 or 3 keywords")
        return keywords

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        if self.probe_min_timeout_ms > self.probe_max_timeout_ms:
            raise ValueError("probe_min_timeout_ms must be <= probe_max_timeout_ms")
        if self.probe_max_concurrency > self.probe_max_concurrency_limit:
            raise ValueError("probe_max_concurrency exceeds probe_max_concurrency_limit")
        total = (
            self.score_weight_basic
            + self.score_weight_functional
            + self.score_weight_content
            + self.score_weight_deep
        )
        if total <= 0:
            raise ValueError("sum of score weights must be positive")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
