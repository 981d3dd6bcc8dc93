"""
Configuration management for the alert listener.

This module handles loading and validating configuration from YAML. All
configuration values are validated using Pydantic models so configuration
errors surface at startup.

Configuration is loaded from config/alerting.yaml. Environment variables
can override individual settings:
    - REDIS_URL: Redis connection URL
    - DATABASE_URL: PostgreSQL connection URL
    - LOG_LEVEL: Application log level
    - ALERT_AGGREGATION_INTERVAL_MINUTES: Digest interval in minutes
    - ALERT_STORE_BACKEND: Alert store backend

Example:
    >>> from alert_engine.config import load_config
    >>> config = load_config()
    >>> config.aggregation.interval_minutes
    1440

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from alert_engine.config.loader import ConfigLoadError, ConfigLoader, load_config
from alert_engine.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    StoreBackend,
    # Sections
    AggregationConfig,
    ChannelsConfig,
    LoggingConfig,
    StoreConfig,
    # Connection config
    PostgresConnectionConfig,
    RedisConnectionConfig,
    # Root config
    AppConfig,
)

__all__: list[str] = [
    # Loader
    "load_config",
    "ConfigLoader",
    "ConfigLoadError",
    # Enums
    "LogFormat",
    "LogLevel",
    "StoreBackend",
    # Sections
    "AggregationConfig",
    "ChannelsConfig",
    "LoggingConfig",
    "StoreConfig",
    # Connection config
    "RedisConnectionConfig",
    "PostgresConnectionConfig",
    # Root config
    "AppConfig",
]
