"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class FinanceBuddyConfig(BaseSettings):
    """Finance Buddy ledger configuration"""
    
    # Persistence configuration
    data_file: str = "finance_data.txt"
    autoload_on_start: bool = True
    autosave_on_exit: bool = True
    
    # Data entry rules
    name_max_length: int = 63
    timestamp_format: str = "%Y-%m-%d %H:%M:%S"  # Local wall-clock time
    allow_negative_amounts: bool = True  # Negative amounts accepted unless disabled
    
    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "WARNING"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    class Config:
        env_prefix = "FINBUDDY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = FinanceBuddyConfig()


def get_config() -> FinanceBuddyConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FinanceBuddyConfig:
    """Reload configuration from environment"""
    global config
    config = FinanceBuddyConfig()
    return config
