"""
Environment configuration loader with validation for the booking core.
"""

import os
import logging
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator, model_validator
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class TourdeskConfig(BaseModel):
    """Configuration model for the booking core with validation."""

    # Database Configuration
    database_url: Optional[str] = Field(
        default=None, description="Database connection URL (DB_* variables when unset)"
    )
    database_echo: bool = Field(default=False, description="Log SQL statements")

    # Valkey Cache Configuration
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(
        default=6379, ge=1, le=65535, description="Valkey server port"
    )
    valkey_password: Optional[str] = Field(
        default=None, description="Valkey server password"
    )
    valkey_database: int = Field(
        default=0, ge=0, le=15, description="Valkey database number"
    )
    queue_cache_enabled: bool = Field(
        default=True, description="Cache queue snapshots in Valkey"
    )
    queue_cache_ttl_seconds: int = Field(
        default=30, ge=1, description="Queue snapshot TTL in seconds"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Holds
    default_hold_hours: int = Field(default=24, ge=1, description="Hold duration when none is given")
    min_hold_hours: int = Field(default=1, ge=1, description="Shortest allowed hold")
    max_hold_hours: int = Field(default=72, ge=1, description="Longest allowed hold")
    urgency_high_hours: float = Field(
        default=2.0, gt=0, description="Remaining hours at or below which a hold is high urgency"
    )
    urgency_medium_hours: float = Field(
        default=6.0, gt=0, description="Remaining hours at or below which a hold is medium urgency"
    )

    # Ticketing
    default_currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def validate_ranges(self) -> "TourdeskConfig":
        """Ensure hold bounds and urgency thresholds are ordered."""
        if self.min_hold_hours > self.max_hold_hours:
            raise ValueError("MIN_HOLD_HOURS must not exceed MAX_HOLD_HOURS")
        if not self.min_hold_hours <= self.default_hold_hours <= self.max_hold_hours:
            raise ValueError("DEFAULT_HOLD_HOURS must lie within the hold bounds")
        if self.urgency_high_hours > self.urgency_medium_hours:
            raise ValueError("URGENCY_HIGH_HOURS must not exceed URGENCY_MEDIUM_HOURS")
        return self


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


def load_config(env_file: Optional[str] = None) -> TourdeskConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Returns:
        TourdeskConfig: Validated configuration object

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    try:
        config_data: Dict[str, Any] = {
            "database_url": os.getenv("DATABASE_URL") or None,
            "database_echo": _env_flag("DATABASE_ECHO", "false"),
            "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
            "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
            "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
            "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
            "queue_cache_enabled": _env_flag("QUEUE_CACHE_ENABLED", "true"),
            "queue_cache_ttl_seconds": int(os.getenv("QUEUE_CACHE_TTL_SECONDS", "30")),
            "log_level": os.getenv("TOURDESK_LOG_LEVEL", "INFO"),
            "default_hold_hours": int(os.getenv("DEFAULT_HOLD_HOURS", "24")),
            "min_hold_hours": int(os.getenv("MIN_HOLD_HOURS", "1")),
            "max_hold_hours": int(os.getenv("MAX_HOLD_HOURS", "72")),
            "urgency_high_hours": float(os.getenv("URGENCY_HIGH_HOURS", "2")),
            "urgency_medium_hours": float(os.getenv("URGENCY_MEDIUM_HOURS", "6")),
            "default_currency": os.getenv("DEFAULT_CURRENCY", "USD"),
        }
        return TourdeskConfig(**config_data)
    except ValueError as e:
        raise ValueError(f"Configuration validation failed: {e}")


# Global configuration instance
_config: Optional[TourdeskConfig] = None


def get_config() -> TourdeskConfig:
    """
    Get the global configuration instance, loading it if necessary.

    Returns:
        TourdeskConfig: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
        logger.debug(
            f"Configuration loaded: hold hours {_config.min_hold_hours}-{_config.max_hold_hours}, "
            f"log level {_config.log_level}"
        )
    return _config


def reset_config() -> None:
    """Drop the cached global configuration so the next access reloads it."""
    global _config
    _config = None
