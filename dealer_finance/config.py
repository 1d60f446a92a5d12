"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class DealerFinanceConfig(BaseSettings):
    """Dealer finance ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="DEALER_FINANCE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "dealer_finance.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    currency: str = "USD"
    default_tax_rate: Decimal = Decimal("0.08")  # Flat invoice tax rate
    default_interest_rate: Decimal = Decimal("6.99")  # Annual percent
    max_loan_term: int = 84  # Months

    # Feature flags
    enable_audit_logging: bool = True
    true_frequency_schedule: bool = False  # Emit one schedule row per real payment period


# Global configuration instance
config = DealerFinanceConfig()


def get_config() -> DealerFinanceConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> DealerFinanceConfig:
    """Reload configuration from environment"""
    global config
    config = DealerFinanceConfig()
    return config
