# fleet_settlement/core/config.py

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Settings
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"

    # Database
    database_url: str = "sqlite:///./fleet_settlement.db"
    database_echo: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_json: bool = False

    # Waterfall rates
    gst_rate: Decimal = Decimal("0.04")
    default_service_charge_rate: Decimal = Decimal("0.10")
    default_partnership_percentage: Decimal = Decimal("50")

    # Obligation scheduling
    emi_due_soon_lead_days: int = 3

    # Late fee hint shown for overdue EMIs (advisory, never enforced)
    penalty_fixed_minimum: Decimal = Decimal("100")
    penalty_late_fee_rate: Decimal = Decimal("0.02")

    # Optimistic concurrency on cash balances
    balance_update_max_retries: int = 3

    # Celery
    celery_broker: str = "redis://localhost:6379/0"
    celery_backend: str = "redis://localhost:6379/1"

    # Source of vehicle profiles and earning/expense records, as "package.module:attribute"
    data_provider: Optional[str] = None

    # Exports
    export_dir: str = "/tmp/exports"


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


settings = get_settings()
