"""Application configuration loaded from .env via Pydantic settings."""

from __future__ import annotations

import json
from functools import lru_cache
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for API, infrastructure and the order lifecycle."""

    app_name: str = Field(default="Orderflow", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=True, alias="DEBUG")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")

    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="123456", alias="POSTGRES_PASSWORD")
    postgres_db: str = Field(default="orderflow_pgsql", alias="POSTGRES_DB")
    postgres_pool_size: int = Field(default=10, alias="POSTGRES_POOL_SIZE")
    postgres_max_overflow: int = Field(default=20, alias="POSTGRES_MAX_OVERFLOW")
    database_url_override: str | None = Field(default=None, alias="DATABASE_URL")
    sqlalchemy_echo: bool = Field(default=False, alias="SQLALCHEMY_ECHO")

    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")
    redis_password: str | None = Field(default=None, alias="REDIS_PASSWORD")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")
    celery_task_default_queue: str = Field(default="orders", alias="CELERY_TASK_DEFAULT_QUEUE")
    celery_task_time_limit_seconds: int = Field(
        default=300,
        alias="CELERY_TASK_TIME_LIMIT_SECONDS",
    )
    celery_task_soft_time_limit_seconds: int = Field(
        default=240,
        alias="CELERY_TASK_SOFT_TIME_LIMIT_SECONDS",
    )
    celery_worker_prefetch_multiplier: int = Field(
        default=1,
        alias="CELERY_WORKER_PREFETCH_MULTIPLIER",
    )
    celery_task_acks_late: bool = Field(default=True, alias="CELERY_TASK_ACKS_LATE")
    celery_task_always_eager: bool = Field(default=False, alias="CELERY_TASK_ALWAYS_EAGER")
    celery_timezone: str = Field(default="UTC", alias="CELERY_TIMEZONE")

    sentry_dsn: str = Field(default="", alias="SENTRY_DSN")
    sentry_env: str = Field(default="", alias="SENTRY_ENV")
    sentry_release: str = Field(default="", alias="SENTRY_RELEASE")
    sentry_traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")

    order_accept_deadline_enabled: bool = Field(
        default=True,
        alias="ORDER_ACCEPT_DEADLINE_ENABLED",
    )
    order_accept_window_minutes: int = Field(
        default=120,
        ge=1,
        alias="ORDER_ACCEPT_WINDOW_MINUTES",
    )
    order_urgent_accept_window_minutes: int = Field(
        default=60,
        ge=1,
        alias="ORDER_URGENT_ACCEPT_WINDOW_MINUTES",
    )
    order_close_on_rating: bool = Field(default=True, alias="ORDER_CLOSE_ON_RATING")
    order_cas_max_attempts: int = Field(default=3, ge=1, alias="ORDER_CAS_MAX_ATTEMPTS")
    order_sweep_enabled: bool = Field(default=True, alias="ORDER_SWEEP_ENABLED")
    order_sweep_interval_seconds: int = Field(
        default=30,
        ge=1,
        alias="ORDER_SWEEP_INTERVAL_SECONDS",
    )
    order_sweep_batch_size: int = Field(default=200, ge=1, alias="ORDER_SWEEP_BATCH_SIZE")
    order_list_limit: int = Field(default=50, ge=1, alias="ORDER_LIST_LIMIT")

    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8081",
            "http://127.0.0.1:8081",
        ],
        alias="CORS_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip()
            if not normalized:
                return []
            if normalized.startswith("["):
                return json.loads(normalized)
            return [item.strip() for item in normalized.split(",") if item.strip()]
        return value

    @property
    def is_dev_mode(self) -> bool:
        return self.app_env.strip().lower() in {"dev", "development", "local", "test"}

    @property
    def database_url(self) -> str:
        if isinstance(self.database_url_override, str) and self.database_url_override.strip():
            return self.database_url_override.strip()
        user = quote_plus(self.postgres_user)
        password = quote_plus(self.postgres_password)
        return (
            f"postgresql+asyncpg://{user}:{password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def uses_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")

    @property
    def redis_url(self) -> str:
        if self.redis_password:
            password = quote_plus(self.redis_password)
            return (
                f"redis://:{password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
            )
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def effective_celery_broker_url(self) -> str:
        if isinstance(self.celery_broker_url, str) and self.celery_broker_url.strip():
            return self.celery_broker_url.strip()
        return self.redis_url

    @property
    def effective_celery_result_backend(self) -> str:
        if isinstance(self.celery_result_backend, str) and self.celery_result_backend.strip():
            return self.celery_result_backend.strip()
        return self.redis_url


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
