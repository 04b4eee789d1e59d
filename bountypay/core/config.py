"""Configuration management for the bounty payout engine."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="Bounty Payout Engine")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="postgresql+psycopg://bountypay:bountypay@db:5432/bountypay")

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="bountypay-audit-logs")
    audit_log_prefix: str = Field(default="audit/records")
    audit_log_sample_rate: float = Field(default=1.0)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    kafka_bootstrap_servers: str = Field(default="kafka:9092")
    payout_events_topic: str = Field(default="payout-events")
    publish_payout_events: bool = Field(default=True)

    gibrapay_base_url: str = Field(default="https://gibrapay.online/v1")
    gibrapay_api_key: str = Field(default="")
    gibrapay_wallet_id: str = Field(default="")
    gibrapay_timeout_seconds: float = Field(default=120.0)

    default_platform_fee_percentage: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    default_pentester_deduction_percentage: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    platform_mpesa_number: str | None = Field(default=None)
    phone_country_code: str = Field(default="258")

    payout_processing_timeout_seconds: int = Field(default=300)
    payout_sweep_interval_seconds: int = Field(default=60)

    admin_api_token: str = Field(default="change-me-admin-token")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
