"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class LedgerConfig(BaseSettings):
    """Ledger service configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///ledger.db"  # memory://, sqlite:///path or postgresql://...
    database_pool_size: int = 5
    database_pool_overflow: int = 10
    
    # Transfer engine configuration
    lock_timeout_seconds: float = 5.0
    lock_order: str = "ascending"  # ascending or caller
    
    # Account configuration
    supported_currencies: List[str] = ["TRY", "USD", "EUR"]
    first_account_number: int = 1000000000  # Numbering starts right after this value
    
    # Cache configuration
    cache_backend: str = "memory"  # memory or redis
    redis_url: str = "redis://localhost:6379/0"
    cache_prefix: str = "ledger"
    cache_ttl_seconds: int = 600  # 10 minutes
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Migration configuration
    auto_migrate: bool = True
    
    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
