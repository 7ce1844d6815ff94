"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 에이전트 엔드포인트 (transport 전용)
    agent_api_base_url: str = "https://api.relevance.ai"
    agent_api_key: str = ""
    agent_id: str = ""
    project_id: str = ""
    conversation_id: str = ""
    agent_user_agent: str = "query-engine/0.1"

    # 캐시
    cache_enabled: bool = True
    cache_capacity: int = 100
    cache_ttl_s: float = 300.0  # 5분

    # 스케줄러 / 재귀 쿼리
    max_recursion_depth: int = 5
    max_derived_per_root: int = 20
    max_queue_size: int = 100
    follow_up_enabled: bool = True

    # 재시도 (지수 백오프)
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay_s: float = 10.0
    retry_jitter_min_s: float = 0.0
    retry_jitter_max_s: float = 0.25

    # 동시성 / 타임아웃
    concurrency_limit: int = 5
    attempt_timeout_s: float = 30.0

    # 결과 히스토리 보관 개수
    history_size: int = 1000

    # API
    api_title: str = "Agent Query Engine"
    api_version: str = "0.1.0"
    api_description: str = "재귀 쿼리 스케줄링, 캐시, 재시도를 제공하는 에이전트 쿼리 엔진"

    # 로깅
    log_level: str = "INFO"

    @field_validator("cache_capacity", "concurrency_limit", "retry_max_attempts", "max_queue_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("cache_ttl_s", "attempt_timeout_s")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator("max_recursion_depth", "max_derived_per_root", "history_size")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("retry_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError("retry_multiplier must be >= 1.0")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
