"""
Configuration loader for YAML-based application configuration.

This module loads the listener configuration from a YAML file and validates
it with the Pydantic models in ``alert_engine.config.models``, so
configuration errors surface at startup rather than mid-run.

Configuration files expected:
    - config/alerting.yaml: logging, redis, postgres, channels, aggregation
      and store sections (every section optional)

Environment variables override:
    - REDIS_URL: Redis connection URL
    - DATABASE_URL: PostgreSQL connection URL
    - LOG_LEVEL: Application log level
    - ALERT_AGGREGATION_INTERVAL_MINUTES: Digest interval in minutes
    - ALERT_STORE_BACKEND: ``memory`` or ``postgres``

Example:
    >>> from alert_engine.config.loader import load_config
    >>> config = load_config("config")
    >>> config.aggregation.interval_minutes
    1440
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from alert_engine.config.models import (
    AggregationConfig,
    AppConfig,
    ChannelsConfig,
    LoggingConfig,
    LogLevel,
    PostgresConnectionConfig,
    RedisConnectionConfig,
    StoreConfig,
)

CONFIG_FILENAME = "alerting.yaml"


class ConfigLoadError(Exception):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Loads and validates application configuration from YAML.

    Expects the following directory structure:
        config/
        └── alerting.yaml  - Listener settings

    Example:
        >>> loader = ConfigLoader("config")
        >>> config = loader.load()
        >>> config.channels.notice
        'alerts:notice'
    """

    def __init__(self, config_dir: Path | str = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Path to configuration directory (default: 'config').

        Raises:
            ConfigLoadError: If config directory does not exist.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigLoadError(
                f"Configuration directory not found: {self.config_dir}",
                file_path=self.config_dir,
            )
        if not self.config_dir.is_dir():
            raise ConfigLoadError(
                f"Configuration path is not a directory: {self.config_dir}",
                file_path=self.config_dir,
            )

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        """
        Load a YAML file from the config directory.

        Args:
            filename: Name of YAML file (e.g., 'alerting.yaml').

        Returns:
            Dict containing parsed YAML content.

        Raises:
            ConfigLoadError: If file not found, empty, or invalid YAML.
        """
        file_path = self.config_dir / filename
        if not file_path.exists():
            raise ConfigLoadError(
                f"Configuration file not found: {file_path}",
                file_path=file_path,
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(
                f"Configuration file is empty: {file_path}",
                file_path=file_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration root must be a mapping in {file_path}",
                file_path=file_path,
            )
        return data

    def _section(self, data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigLoadError(
                f"Section '{name}' must be a mapping",
                file_path=self.config_file,
            )
        return dict(section)

    def _load_logging(self, section: Dict[str, Any]) -> LoggingConfig:
        """
        Load logging configuration.

        Environment variables:
            - LOG_LEVEL: Log level; unknown values are ignored.
        """
        level_str = os.getenv("LOG_LEVEL")
        if level_str:
            try:
                section["level"] = LogLevel(level_str.upper())
            except ValueError:
                pass
        return LoggingConfig(**section)

    def _load_redis_connection(self, section: Dict[str, Any]) -> RedisConnectionConfig:
        """
        Load Redis connection configuration.

        Environment variables:
            - REDIS_URL: Redis connection URL
        """
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            section["url"] = redis_url
        return RedisConnectionConfig(**section)

    def _load_postgres_connection(self, section: Dict[str, Any]) -> PostgresConnectionConfig:
        """
        Load PostgreSQL connection configuration.

        Environment variables:
            - DATABASE_URL: PostgreSQL connection URL
        """
        db_url = os.getenv("DATABASE_URL")
        if db_url:
            section["url"] = db_url
        return PostgresConnectionConfig(**section)

    def _load_aggregation(self, section: Dict[str, Any]) -> AggregationConfig:
        """
        Load aggregation configuration.

        Environment variables:
            - ALERT_AGGREGATION_INTERVAL_MINUTES: Interval in minutes

        Raises:
            ConfigLoadError: If the override is not an integer.
        """
        interval = os.getenv("ALERT_AGGREGATION_INTERVAL_MINUTES")
        if interval:
            try:
                section["interval_minutes"] = int(interval)
            except ValueError as e:
                raise ConfigLoadError(
                    f"ALERT_AGGREGATION_INTERVAL_MINUTES must be an integer: {interval!r}",
                    cause=e,
                ) from e
        return AggregationConfig(**section)

    def _load_store(self, section: Dict[str, Any]) -> StoreConfig:
        """
        Load store configuration.

        Environment variables:
            - ALERT_STORE_BACKEND: ``memory`` or ``postgres``
        """
        backend = os.getenv("ALERT_STORE_BACKEND")
        if backend:
            section["backend"] = backend.lower()
        return StoreConfig(**section)

    def load(self) -> AppConfig:
        """
        Load and validate the configuration file.

        Returns:
            AppConfig: Validated application configuration.

        Raises:
            ConfigLoadError: If the configuration is invalid or missing.
        """
        data = self._load_yaml(CONFIG_FILENAME)

        unknown = set(data) - set(AppConfig.model_fields)
        if unknown:
            raise ConfigLoadError(
                f"Unknown configuration sections: {sorted(unknown)}",
                file_path=self.config_file,
            )

        try:
            return AppConfig(
                logging=self._load_logging(self._section(data, "logging")),
                redis=self._load_redis_connection(self._section(data, "redis")),
                postgres=self._load_postgres_connection(self._section(data, "postgres")),
                channels=ChannelsConfig(**self._section(data, "channels")),
                aggregation=self._load_aggregation(self._section(data, "aggregation")),
                store=self._load_store(self._section(data, "store")),
            )

        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed: {e}",
                file_path=self.config_file,
                cause=e,
            ) from e


def load_config(config_dir: Path | str = "config") -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_dir: Path to configuration directory (default: 'config').

    Returns:
        AppConfig: Validated application configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.
    """
    loader = ConfigLoader(config_dir)
    return loader.load()
