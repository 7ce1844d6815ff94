"""로깅 설정

엔진 전체가 공유하는 `query_engine` 로거를 한 번만 구성합니다.
쿼리 텍스트는 사용자 입력이므로 `sanitize_for_log()`를 거친 뒤 기록합니다.
"""
import logging
import os
import sys
from typing import Optional

from query_engine.core.config import settings


IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"

LOGGER_NAME = "query_engine"

_SENSITIVE_MARKERS = ("password", "token", "api_key", "apikey", "secret", "authorization", "bearer")


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """로거 초기화 및 설정

    Args:
        level: 로그 레벨 (없으면 settings.log_level)

    Returns:
        구성된 `query_engine` 로거
    """
    logger = logging.getLogger(LOGGER_NAME)

    log_level = (level or settings.log_level).upper()
    # Production에서는 DEBUG 비활성화
    if IS_PRODUCTION and log_level == "DEBUG":
        log_level = "INFO"
    logger.setLevel(getattr(logging, log_level))

    if IS_PRODUCTION:
        fmt = "%(asctime)s - %(levelname)s - %(message)s"
    else:
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(getattr(logging, log_level))

    return logger


logger = setup_logging()


def sanitize_for_log(value: str, max_length: int = 100) -> str:
    """민감 정보 제거 후 로깅용 문자열 반환

    - 민감 키워드가 포함되면 전체를 마스킹
    - 개행은 공백으로 치환 (로그 한 줄 유지)
    - max_length 초과 시 절단

    Args:
        value: 로깅할 문자열
        max_length: 최대 길이

    Returns:
        마스킹/절단된 문자열
    """
    if not value:
        return "[empty]"

    lowered = value.lower()
    if any(marker in lowered for marker in _SENSITIVE_MARKERS):
        return "***"

    result = " ".join(value.splitlines())
    if len(result) > max_length:
        result = result[:max_length] + "..."
    return result
