"""
Application settings and configuration management.

Uses pydantic-settings for environment variable loading.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "prepflow"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Completion service (OpenAI-compatible chat completions, Groq by default)
    llm_api_key: str = ""
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    request_timeout_seconds: float = 30.0

    # Generation favours variety, evaluation favours consistency
    generation_temperature: float = 0.9
    generation_max_tokens: int = 8000
    evaluation_temperature: float = 0.3
    evaluation_max_tokens: int = 2000

    # Retry policy for transient upstream failures
    retry_max_retries: int = Field(default=2, ge=0, le=5)
    retry_base_delay_seconds: float = 2.0
    retry_max_delay_seconds: float = 10.0
    retry_backoff_multiplier: float = 2.0

    # Session timing
    question_time_limit_seconds: int = 300
    session_time_limit_seconds: int = 3600  # 1 hour hard cap
    timer_tick_seconds: float = 1.0

    # Langfuse tracing (optional side-channel)
    langfuse_enabled: bool = False
    langfuse_public_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_base_url: str = "https://cloud.langfuse.com"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
