"""로깅 설정 (Security Enhanced)"""
import logging
import os
import sys

from sourceprobe.core.config import settings


# Production 환경에서는 DEBUG 로그 비활성화
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"


def setup_logging() -> logging.Logger:
    """로거 초기화 및 설정"""

    logger = logging.getLogger("sourceprobe")

    log_level = settings.log_level.upper()
    if IS_PRODUCTION and log_level == "DEBUG":
        log_level = "INFO"

    logger.setLevel(getattr(logging, log_level, logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level, logging.INFO))

    if IS_PRODUCTION:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)

    return logger


logger = setup_logging()


def sanitize_for_log(value: str, max_length: int = 100) -> str:
    """민감 정보 제거 후 로깅용 문자열 반환

    Args:
        value: 로깅할 문자열 (키워드, URL 등)
        max_length: 최대 길이

    Returns:
        마스킹/절단된 문자열
    """
    if not value:
        return "[empty]"

    patterns_to_mask = (
        "password",
        "token",
        "api_key",
        "secret",
    )

    result = value
    lowered = result.lower()
    for pattern in patterns_to_mask:
        if pattern in lowered:
            result = "***"
            break

    if len(result) > max_length:
        result = result[:max_length] + "..."

    return result
