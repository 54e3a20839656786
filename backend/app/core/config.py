"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore", # Allow extra env vars without failing
    )

    # App
    app_name: str = "Event Log Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    # Secret key MUST be provided via environment (e.g. SECRET_KEY in .env)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # API
    api_prefix: str = "/api/v1"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./event_log_ledger.db"
    db_ssl_mode: str = "disable" # "require" for production
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Entry classification thresholds
    entry_warning_minutes: int = 15
    entry_critical_minutes: int = 60
    max_retrospective_hours: int = 24

    # Amendment rules
    admin_role: str = "admin"
    amendment_window_hours: int = 24
    change_reason_min_length: int = 10
    revision_append_max_retries: int = 3

    # Shown in the trailer of exported revision histories
    export_source_label: str = "inCommand"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
