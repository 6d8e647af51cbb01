"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Upstream order API
    order_api_url: str = "https://api.cartpanda.com/v3"
    order_api_token: Optional[str] = None
    order_api_store: Optional[str] = None
    order_api_timeout_seconds: float = 300.0  # bulk listing calls can be slow

    # Persistent store
    database_url: str = "sqlite+aiosqlite:///./orders.db"

    # Inbound webhooks
    webhook_secret: Optional[str] = None
    webhook_signature_header: str = "x-webhook-signature"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    environment: str = "development"

    # Alerting
    alert_webhook_url: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    # Redis (sync lock + run history)
    redis_enabled: bool = False
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    # Circuit breakers (one per dependency)
    api_breaker_threshold: int = 3
    api_breaker_reset_seconds: float = 30.0
    db_breaker_threshold: int = 5
    db_breaker_reset_seconds: float = 60.0

    # Retry / backoff
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    # Scheduler
    scheduler_enabled: bool = True
    incremental_sync_interval_hours: int = 1
    incremental_window_hours: int = 24
    daily_validation_hour: int = 4
    validation_auto_fix: bool = True

    # Run metrics sidecar
    metrics_file: Optional[str] = "sync-metrics.json"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
