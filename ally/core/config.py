"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Ally Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://ally@localhost:5432/ally"

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    coach_temperature: float = 0.7
    coach_max_tokens: int = 200
    dump_max_tokens: int = 2048
    review_max_tokens: int = 1500

    session_ttl_hours: int = 24 * 30
    rate_limit_enabled: bool = True

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "ally"

    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    balance_job_hour: int = 3
    balance_job_minute: int = 0
    jobs_run_on_startup: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
