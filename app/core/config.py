# app/core/config.py
from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings, loaded from environment variables and/or .env file.
    """

    # Environment settings
    APP_NAME: str = "HTTP Job Scheduler"
    APP_ENV: str = "development"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # HTTP server
    HTTP_BIND_ADDR: str = "0.0.0.0"
    HTTP_PORT: int = 80
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Comma-delimited list of allowed origins",
    )

    # Database settings
    DATABASE_URL: str = "sqlite:///./scheduler.db"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = Field(default="password", repr=False)
    POSTGRES_DB: str = "scheduler"
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: int = 5432
    DB_MAX_OPEN_CONNS: int = 25
    DB_MAX_IDLE_CONNS: int = 5
    DB_AUTO_CREATE: bool = True

    # Outbound dispatch
    DISPATCH_TIMEOUT_SECONDS: float = 30.0
    DISPATCH_CONTENT_TYPE: str = "application/octet-stream"

    # Scheduling
    SCHEDULER_TIMEZONE: str = "UTC"
    SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS: Optional[float] = None

    # Observability settings
    SENTRY_DSN: Optional[str] = None

    @property
    def database_url(self) -> str:
        """Postgres components win over DATABASE_URL when a server is configured."""
        if self.POSTGRES_SERVER:
            return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return self.DATABASE_URL

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        """Allow comma-separated strings for origins env var."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("DB_MAX_OPEN_CONNS", "DB_MAX_IDLE_CONNS")
    @classmethod
    def _positive_pool_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("database pool sizes must be >= 1")
        return value

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
