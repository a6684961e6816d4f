"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class MinibankConfig(BaseSettings):
    """MiniBank engine configuration"""
    
    # Storage configuration
    data_dir: str = "data"  # All collections live under this directory
    
    # Ledger rules
    minimum_balance: str = "50"  # Floor for withdrawals and transfer debits
    account_number_floor: int = 1000  # First issued number is floor + 1
    
    # Authentication
    lockout_threshold: int = 3
    bootstrap_admin_username: str = "q"
    bootstrap_admin_password: str = "q"
    default_admin_password: str = "admin123"  # Assigned on admin enrollment approval
    session_idle_timeout_seconds: float = 10.0
    
    # Loan rules
    loan_minimum_balance: str = "5000"
    loan_interest_rate: str = "0.05"
    
    # Default currency rates (1 OMR = ...)
    rate_usd: str = "2.60"
    rate_eur: str = "2.45"
    rate_sar: str = "9.75"
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8090
    
    class Config:
        env_prefix = "MINIBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = MinibankConfig()


def get_config() -> MinibankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MinibankConfig:
    """Reload configuration from environment"""
    global config
    config = MinibankConfig()
    return config
