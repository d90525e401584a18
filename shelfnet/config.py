"""
Shelfnet settings.

Values come from the process environment and an optional ``.env`` file. In
production (or whenever an AWS endpoint override is set) a JSON secret from
AWS Secrets Manager is laid over them, so credentials never live in the image.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Literal, Optional

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "testing", "staging", "production"] = "development"

    # ── Database ──
    database_url: Optional[str] = None
    postgres_user: str = "shelfnet"
    postgres_password: str = "shelfnet"
    postgres_db: str = "shelfnet"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = Field(10, ge=1)
    db_max_overflow: int = Field(10, ge=0)

    # ── Tokens ──
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(30, ge=1)
    refresh_token_expire_days: int = Field(7, ge=1)

    # ── Google Books ──
    google_books_api_url: str = "https://www.googleapis.com/books/v1/volumes"
    google_books_api_key: Optional[str] = None
    catalog_timeout_seconds: float = Field(10.0, gt=0)

    # ── Activity feed retention ──
    activity_retention_days: int = Field(365, ge=0)
    activity_purge_hour_utc: int = Field(3, ge=0, le=23)

    # ── Celery ──
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # ── AWS Secrets Manager ──
    aws_region: str = "us-east-1"
    aws_secret_name: str = "shelfnet/production"
    aws_endpoint_url: Optional[str] = None  # e.g. LocalStack

    # ── Observability / HTTP ──
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"
    enable_metrics: bool = True
    cors_origins: str = "http://localhost:3000"

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def sync_database_dsn(self) -> str:
        """Driverless DSN for alembic's offline mode."""
        return self.database_dsn.replace("+asyncpg", "").replace("+aiosqlite", "")

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def uses_secrets_manager(self) -> bool:
        return self.environment == "production" or self.aws_endpoint_url is not None

    def apply_overrides(self, overrides: dict[str, Any]) -> list[str]:
        """Set every known field present in ``overrides``; returns the names applied."""
        applied = []
        for key, value in overrides.items():
            name = key.lower()
            if name in type(self).model_fields:
                setattr(self, name, value)
                applied.append(name)
        return applied


def _fetch_secret(settings: Settings) -> dict[str, Any]:
    import boto3

    kwargs: dict[str, Any] = {"region_name": settings.aws_region}
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    client = boto3.client("secretsmanager", **kwargs)
    response = client.get_secret_value(SecretId=settings.aws_secret_name)
    return json.loads(response["SecretString"])


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    if not settings.uses_secrets_manager:
        return settings

    try:
        secret = _fetch_secret(settings)
    except Exception as e:
        logger.error("secrets_overlay_failed", secret=settings.aws_secret_name, error=str(e))
        return settings

    applied = settings.apply_overrides(secret)
    logger.info("secrets_overlay_applied", secret=settings.aws_secret_name, fields=len(applied))
    return settings
