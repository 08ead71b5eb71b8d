"""
Configuration management with hot-reload capability.

Uses Pydantic Settings for environment variable handling and validation.
"""

import os
import yaml
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/linkguard
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class SecuritySettings(BaseSettings):
    """Rate limiting, blocking and session configuration."""

    rate_window_seconds: int = Field(default=60, description="Sliding window length for rate limiting")
    rate_max_requests: int = Field(default=50, description="Requests allowed per IP inside the window")
    auto_block_hours: int = Field(default=1, description="Lifetime of an automatic block")
    sample_retention_seconds: int = Field(
        default=300,
        description="Age after which rate window samples are garbage (must exceed the window)",
    )
    session_ttl_seconds: int = Field(default=7200, description="Server-side session lifetime (2h)")
    session_max_entries: int = Field(default=10000, description="Maximum live sessions held in memory")
    session_cookie_name: str = Field(default="sid", description="Session cookie name")
    cookie_secure: bool = Field(default=False, description="Mark the session cookie Secure")
    trust_proxy: bool = Field(default=False, description="Resolve client IP from X-Forwarded-For")

    @field_validator("sample_retention_seconds")
    def validate_retention(cls, v: int, info: Any) -> int:
        """Samples must outlive the rate window or counts would be wrong."""
        window = info.data.get("rate_window_seconds", 60)
        if v <= window:
            raise ValueError(
                f"sample_retention_seconds ({v}) must be larger than rate_window_seconds ({window})"
            )
        return v

    class Config:
        env_prefix = "LINKGUARD_SECURITY_"


class CryptoSettings(BaseSettings):
    """PII encryption configuration."""

    encryption_key: str = Field(
        default="",
        description="AES-256-GCM key as 64 hex characters (32 bytes)",
    )

    class Config:
        env_prefix = "LINKGUARD_CRYPTO_"


class RetentionSettings(BaseSettings):
    """Anonymization and cleanup sweep configuration."""

    retention_days: int = Field(default=30, description="Age after which link requests are anonymized")
    anonymize_interval_hours: int = Field(default=24, description="Anonymization sweep interval")
    anonymize_initial_delay_seconds: float = Field(default=3.0, description="Delay before first anonymization")
    cleanup_interval_seconds: int = Field(default=300, description="Rate limit cleanup interval (5 min)")
    cleanup_initial_delay_seconds: float = Field(default=2.0, description="Delay before first cleanup")
    background_sweeps_enabled: bool = Field(default=True, description="Run periodic sweeps in the background")

    @field_validator("retention_days")
    def validate_retention_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retention_days must be at least 1")
        return v

    class Config:
        env_prefix = "LINKGUARD_RETENTION_"


class DatabaseSettings(BaseSettings):
    """Record store configuration."""

    url: str = Field(default="sqlite:///./data.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")

    class Config:
        env_prefix = "LINKGUARD_DATABASE_"


class AdminSettings(BaseSettings):
    """Seed credentials for the dashboard administrator."""

    username: str = Field(default="admin", description="Administrator username")
    password: str = Field(default="Admin@123456", description="Administrator password")

    class Config:
        env_prefix = "LINKGUARD_ADMIN_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    environment: str = Field(default="development", description="development or production")

    # Component settings
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    crypto: CryptoSettings = Field(default_factory=CryptoSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    class Config:
        env_prefix = "LINKGUARD_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Set environment variables from config file if they don't exist
    # This allows config file to provide defaults, env vars to override
    if config_data:
        _set_env_from_config(config_data)

    # Let Pydantic Settings handle the rest (env vars override config file)
    settings = Settings()
    return settings


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "LINKGUARD_HOST",
        ("server", "port"): "LINKGUARD_PORT",
        ("server", "debug"): "LINKGUARD_DEBUG",
        ("server", "log_level"): "LINKGUARD_LOG_LEVEL",
        ("server", "environment"): "LINKGUARD_ENVIRONMENT",
        ("security", "rate_window_seconds"): "LINKGUARD_SECURITY_RATE_WINDOW_SECONDS",
        ("security", "rate_max_requests"): "LINKGUARD_SECURITY_RATE_MAX_REQUESTS",
        ("security", "auto_block_hours"): "LINKGUARD_SECURITY_AUTO_BLOCK_HOURS",
        ("security", "sample_retention_seconds"): "LINKGUARD_SECURITY_SAMPLE_RETENTION_SECONDS",
        ("security", "session_ttl_seconds"): "LINKGUARD_SECURITY_SESSION_TTL_SECONDS",
        ("security", "cookie_secure"): "LINKGUARD_SECURITY_COOKIE_SECURE",
        ("security", "trust_proxy"): "LINKGUARD_SECURITY_TRUST_PROXY",
        ("crypto", "encryption_key"): "LINKGUARD_CRYPTO_ENCRYPTION_KEY",
        ("retention", "retention_days"): "LINKGUARD_RETENTION_RETENTION_DAYS",
        ("retention", "anonymize_interval_hours"): "LINKGUARD_RETENTION_ANONYMIZE_INTERVAL_HOURS",
        ("retention", "cleanup_interval_seconds"): "LINKGUARD_RETENTION_CLEANUP_INTERVAL_SECONDS",
        ("retention", "background_sweeps_enabled"): "LINKGUARD_RETENTION_BACKGROUND_SWEEPS_ENABLED",
        ("database", "url"): "LINKGUARD_DATABASE_URL",
        ("admin", "username"): "LINKGUARD_ADMIN_USERNAME",
        ("admin", "password"): "LINKGUARD_ADMIN_PASSWORD",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
