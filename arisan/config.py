"""
Configuration Management Module

Centralized configuration using pydantic-settings. Every field can be set
through an ARISAN_-prefixed environment variable or a .env file.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ArisanConfig(BaseSettings):
    """Arisan ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ARISAN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "arisan.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Identity configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    default_currency: str = "IDR"
    weekly_period_days: int = 7
    monthly_period_days: int = 30
    invite_code_length: int = 6


config = ArisanConfig()


def get_config() -> ArisanConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ArisanConfig:
    """Reload configuration from environment"""
    global config
    config = ArisanConfig()
    return config
