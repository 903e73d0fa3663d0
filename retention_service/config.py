"""Configuration management for the Retention Manager Service.

This module provides centralized configuration management using Pydantic Settings,
supporting environment variables, .env files, and YAML configuration files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADAPTERS = "retention_service.retention.memory:build_adapters"


class RetentionManagerSettings(BaseSettings):
    """Retention manager scheduling and batching settings."""

    enabled: bool = Field(default=False, description="Enable the retention manager")
    start_enabled: bool = Field(
        default=True,
        description="Start the retention manager automatically when enabled",
    )
    interval_ms: int = Field(default=30000, ge=1000, description="Scheduling interval")
    lock_key: str = Field(default="retention_manager_lock")
    lock_ttl_ms: int = Field(default=60000, ge=1000)
    batch_size: int = Field(default=1500, ge=1, description="Elements fetched per rule and cycle")
    max_deletion_concurrency: int = Field(default=2, ge=1)
    adapters: str = Field(
        default=DEFAULT_ADAPTERS,
        description="Import path of the store adapters factory (module:callable)",
    )

    @field_validator("adapters")
    @classmethod
    def validate_adapters(cls, v: str) -> str:
        """Validate the adapters factory import path."""
        module_name, _, attribute = v.partition(":")
        if not module_name or not attribute:
            raise ValueError(f"Invalid adapters path: {v}. Expected 'module:callable'")
        return v

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    model_config = SettingsConfigDict(env_prefix="RETENTION_MANAGER_")


class RedisSettings(BaseSettings):
    """Redis connection settings for the cluster lock."""

    url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    password: Optional[str] = Field(default=None)
    socket_timeout: int = Field(default=5)
    socket_connect_timeout: int = Field(default=5)
    retry_on_timeout: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class ObservabilitySettings(BaseSettings):
    """Observability and monitoring settings."""

    service_name: str = Field(default="retention-manager")
    service_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    otlp_endpoint: Optional[str] = Field(default=None)
    console_traces: bool = Field(default=False)
    prometheus_enabled: bool = Field(default=True)
    prometheus_port: int = Field(default=9090)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in ("json", "console"):
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v.lower()

    model_config = SettingsConfigDict(env_prefix="OTEL_")


class Settings(BaseSettings):
    """Main application settings."""

    app_name: str = Field(default="Retention Manager Service")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    env: str = Field(default="development")

    # Sub-settings
    retention_manager: RetentionManagerSettings = Field(default_factory=RetentionManagerSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Mapping of settings sections, empty if the file does not exist

    Raises:
        ValueError: If the file does not contain a mapping
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def load_settings(config_path: Union[str, Path, None] = None) -> Settings:
    """Build settings from the environment, overlaid with a YAML file.

    Sections present in the file are merged key by key over the
    environment-derived values.

    Args:
        config_path: Optional YAML configuration path

    Returns:
        Settings instance
    """
    base = Settings()
    if config_path is None:
        return base

    overrides = load_yaml_config(config_path)
    if not overrides:
        return base

    merged = base.model_dump(mode="json")
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return Settings.model_validate(merged)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment.

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()


# Global settings instance for convenient access
settings = get_settings()
