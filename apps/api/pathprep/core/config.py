from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # GROQ_API_KEY 또는 legacy GROQ_KEY 둘 다 허용
    groq_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GROQ_API_KEY", "GROQ_KEY"),
    )
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.1-8b-instant"

    ai_request_timeout_sec: int = 30
    ai_max_concurrency: int = 4
    ai_backpressure_acquire_timeout_ms: int = 200
    ai_retry_max_attempts: int = 3
    ai_retry_base_delay_sec: float = 1.0
    ai_retry_max_delay_sec: float = 10.0
    ai_retry_jitter: float = 0.5

    breaker_window_size: int = 10
    breaker_failure_ratio: float = 0.5
    breaker_min_calls: int = 5
    breaker_cooldown_sec: int = 60

    store_timeout_sec: int = 10
    staleness_days: int = 30

    model_config = SettingsConfigDict(env_file="../../.env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
