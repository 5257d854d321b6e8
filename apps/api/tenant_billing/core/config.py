from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Tenant Billing API"
    app_env: str = "local"
    app_version: str = "0.1.0"
    app_debug: bool = True
    api_port: int = 8000
    database_url: str = "sqlite+pysqlite:///./tenant_billing.db"
    redis_url: str = "redis://redis:6379/0"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_exporter_endpoint: str | None = None
    otel_console_exporter: bool = False
    system_base_currency: str = "USD"
    default_currency: str = "USD"
    invoice_number_prefix: str = "INV"
    invoice_due_days: int = 7
    default_tax_rate: Decimal = Decimal("0")
    renewal_window_days: int = 3
    billing_jobs_enabled: bool = True
    billing_jobs_interval_seconds: int = 3600

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
