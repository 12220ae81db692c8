"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    cashier_token: str | None = None
    editor_base_url: str
    session_ttl_seconds: int = 900
    completed_session_retention_seconds: int = 86400
    session_sweep_interval_seconds: int = 300
    bakery_timezone: str = "Asia/Manila"
    max_orders_per_day: int = 10
    receipt_bucket: str = "payment-receipts"
    notification_webhook_url: str | None = None
    notification_sender: str = "orders@goldenmunch.local"
    admin_email: str = "admin@goldenmunch.local"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
