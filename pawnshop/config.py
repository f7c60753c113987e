"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from datetime import date
from typing import List, Optional

from pydantic_settings import BaseSettings


class PawnshopConfig(BaseSettings):
    """Pawnshop backend configuration"""

    # Database configuration
    database_url: str = "sqlite:///pawnshop.db"  # or memory:// for throwaway runs

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_title: str = "Pawnshop Loan Backend"
    cors_origins: List[str] = ["*"]

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    min_loan_amount: str = "1000.00"
    max_interest_rate: str = "100"
    default_voucher_term_months: int = 12
    business_date: Optional[date] = None  # Pins "today" for back-dated counter work
    default_page_size: int = 10
    max_page_size: int = 100
    critical_overdue_threshold: int = 2

    # Trash bin configuration
    trash_item_types: List[str] = [
        "customer", "jewel", "voucher", "loan", "interestRate", "financialYear",
    ]

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "PAWNSHOP_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PawnshopConfig()


def get_config() -> PawnshopConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PawnshopConfig:
    """Reload configuration from environment"""
    global config
    config = PawnshopConfig()
    return config
