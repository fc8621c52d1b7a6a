"""Configuration management for the anonymous voting service."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CapacityPolicyName = Literal["advisory", "strict"]


class Settings(BaseSettings):
    app_name: str = Field(default="Anonymous Voting Service")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    database_url: str = Field(default="postgresql+psycopg://voting:voting@db:5432/voting")

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="voting-audit-logs")
    audit_log_prefix: str = Field(default="audit/records")
    audit_log_sample_rate: float = Field(default=1.0)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    otel_exporter_endpoint: str | None = Field(default=None)

    accumulator_default_capacity: int = Field(default=20, gt=0)
    accumulator_capacity_policy: CapacityPolicyName = Field(
        default="advisory",
        description="'strict' rejects inserts beyond the declared capacity, 'advisory' grows the tree.",
    )
    require_membership_to_vote: bool = Field(default=True)

    invitation_token_ttl_days: int = Field(default=7, gt=0)
    invitation_token_bytes: int = Field(default=32, ge=16)
    admin_token_bytes: int = Field(default=32, ge=16)

    frontend_url: str = Field(default="http://localhost:3000")
    notification_api_url: str = Field(default="https://api.resend.com/emails")
    notification_api_key: str | None = Field(default=None)
    notification_sender: str = Field(default="Anonymous Voting <voting@example.com>")
    notification_timeout_seconds: float = Field(default=5.0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["CapacityPolicyName", "Settings", "get_settings"]
