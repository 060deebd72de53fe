"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class AssetFinanceConfig(BaseSettings):
    """Asset financing back office configuration"""

    # Database configuration
    database_url: str = "sqlite:///asset_finance.db"  # memory://, sqlite:///path, postgresql://...
    database_echo: bool = False

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1
    auth_enabled: bool = True  # Require X-Staff-Id / X-Staff-Roles headers

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Loan product defaults
    currency_code: str = "UGX"
    default_interest_rate: str = "30"  # Flat percent over the full term
    default_duration_months: int = 12

    # Delinquency thresholds (consecutive missed installments)
    at_risk_threshold: int = 3
    recovery_threshold: int = 4

    # Sequence generator
    loan_number_prefix: str = "LN"
    payment_reference_prefix: str = "PAY"
    sequence_padding: int = 6

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "ASSETFIN_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = AssetFinanceConfig()


def get_config() -> AssetFinanceConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AssetFinanceConfig:
    """Reload configuration from environment"""
    global config
    config = AssetFinanceConfig()
    return config
