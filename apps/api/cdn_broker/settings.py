"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "cdn_broker"
    postgres_password: str = "cdn_broker_dev_password"
    postgres_db: str = "cdn_broker"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_recycle_seconds: int = 3600

    # Redis (Celery broker and result backend)
    redis_url: str = "redis://localhost:6379/0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    environment: str = "development"
    tls_certificate_path: Optional[str] = None
    tls_private_key_path: Optional[str] = None

    # Broker
    broker_username: str = "broker"
    broker_password: str = "broker-dev-password-change-in-production"
    min_broker_api_version: str = "2.13"
    catalog_path: str = "catalog.json"

    # CDN defaults
    default_origin: str = ""
    default_default_ttl: int = 86400
    extra_request_headers: dict[str, str] = {}

    # AWS
    aws_region: str = "eu-west-1"
    aws_request_timeout_seconds: int = 30
    aws_max_attempts: int = 5

    # Cloud Foundry API (domain ownership checks)
    cf_api_address: Optional[str] = None
    cf_client_id: Optional[str] = None
    cf_client_secret: Optional[str] = None

    # Scheduling
    schedule: str = "0 0 * * *"  # orphaned certificate sweep
    route_check_schedule: str = "0 * * * *"  # reconciliation sweep

    # Health checks
    health_check_timeout_seconds: int = 10

    # Logging
    log_level: str = "INFO"

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def tls_enabled(self) -> bool:
        """Check whether the server should terminate TLS itself."""
        return bool(self.tls_certificate_path and self.tls_private_key_path)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def validate_production_settings(self):
        """Validate settings for non-development environments."""
        if not self.schedule:
            raise ValueError("SCHEDULE must be a non-empty cron expression.")
        if bool(self.tls_certificate_path) != bool(self.tls_private_key_path):
            raise ValueError(
                "TLS_CERTIFICATE_PATH and TLS_PRIVATE_KEY_PATH must be provided together."
            )

        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if not self.broker_username or not self.broker_password:
                raise ValueError("BROKER_USERNAME and BROKER_PASSWORD are required.")
            if self.broker_password == Settings.model_fields["broker_password"].default:
                raise ValueError(
                    "BROKER_PASSWORD is set to the development default. "
                    "Do not use default credentials."
                )
            if not self.default_origin:
                raise ValueError("DEFAULT_ORIGIN is required in production.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
