"""Configuration management using Pydantic Settings"""

import os
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Docker secrets take the place of plain env vars when mounted
SECRETS_DIR = "/run/secrets" if os.path.isdir("/run/secrets") else None


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        secrets_dir=SECRETS_DIR,
    )

    # Zaim OAuth consumer
    zaim_consumer_key: str = ""
    zaim_consumer_secret: SecretStr = SecretStr("")
    zaim_callback_url: Optional[str] = None

    # Zaim endpoints
    zaim_api_base: str = "https://api.zaim.net/v2"
    zaim_request_token_url: str = "https://api.zaim.net/v2/auth/request"
    zaim_authorize_url: str = "https://auth.zaim.net/users/auth"
    zaim_access_token_url: str = "https://api.zaim.net/v2/auth/access"

    # Credential storage
    token_file: str = "/data/oauth_tokens.json"
    encryption_key: SecretStr = SecretStr("")

    # Redis (handshake store shared across instances)
    redis_url: Optional[str] = None
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: SecretStr = SecretStr("")
    redis_db: int = 0

    # Service
    service_name: str = "zaim-exporter"
    port: int = 8080
    log_level: str = "INFO"

    # Timeouts and lifetimes
    http_timeout_seconds: float = 30.0
    fetch_timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 300.0
    handshake_ttl_seconds: int = 600

    # Bucketing time zone of the Zaim reports
    reporting_timezone: str = "Asia/Tokyo"

    @property
    def reporting_tz(self) -> ZoneInfo:
        return ZoneInfo(self.reporting_timezone)

    @property
    def resolved_redis_url(self) -> Optional[str]:
        """
        Redis connection string, or None when the in-memory store should be used.

        An explicit REDIS_URL wins; otherwise the URL is built from its
        components, but only when a password is configured.
        """
        if self.redis_url:
            return self.redis_url
        password = self.redis_password.get_secret_value()
        if self.redis_host and password:
            return f"redis://:{password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return None

    def ensure_oauth_configured(self) -> None:
        """Raise ValueError if the Zaim consumer credentials are missing"""
        if not self.zaim_consumer_key or not self.zaim_consumer_secret.get_secret_value():
            raise ValueError("ZAIM_CONSUMER_KEY and ZAIM_CONSUMER_SECRET must be set")


settings = Settings()
