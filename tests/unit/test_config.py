"""Unit tests for configuration management."""

import pytest
from pydantic import ValidationError

from retention_service.config import (
    DEFAULT_ADAPTERS,
    ObservabilitySettings,
    RetentionManagerSettings,
    Settings,
    get_settings,
    load_settings,
    load_yaml_config,
    reload_settings,
)


def test_default_settings():
    """Test default settings are loaded correctly."""
    settings = Settings()

    assert settings.app_name == "Retention Manager Service"
    assert settings.app_version == "1.0.0"
    assert settings.observability.service_name == "retention-manager"


def test_retention_manager_defaults():
    """Test retention manager defaults."""
    settings = RetentionManagerSettings()

    assert settings.enabled is False
    assert settings.start_enabled is True
    assert settings.interval_ms == 30000
    assert settings.interval_seconds == 30.0
    assert settings.lock_key == "retention_manager_lock"
    assert settings.batch_size == 1500
    assert settings.max_deletion_concurrency == 2
    assert settings.adapters == DEFAULT_ADAPTERS


def test_retention_manager_from_env(monkeypatch):
    """Test retention manager settings read the environment."""
    monkeypatch.setenv("RETENTION_MANAGER_ENABLED", "true")
    monkeypatch.setenv("RETENTION_MANAGER_INTERVAL_MS", "60000")
    monkeypatch.setenv("RETENTION_MANAGER_MAX_DELETION_CONCURRENCY", "4")

    settings = RetentionManagerSettings()

    assert settings.enabled is True
    assert settings.interval_seconds == 60.0
    assert settings.max_deletion_concurrency == 4


def test_invalid_adapters_path():
    """Test adapters path must be module:callable."""
    with pytest.raises(ValidationError):
        RetentionManagerSettings(adapters="no_callable")


def test_invalid_concurrency():
    """Test concurrency must be positive."""
    with pytest.raises(ValidationError):
        RetentionManagerSettings(max_deletion_concurrency=0)


def test_log_level_normalized():
    """Test log level is upper-cased and validated."""
    assert ObservabilitySettings(log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValidationError):
        ObservabilitySettings(log_level="verbose")


def test_load_yaml_missing_file(tmp_path):
    """Test a missing YAML file yields no overrides."""
    assert load_yaml_config(tmp_path / "missing.yaml") == {}


def test_load_yaml_not_a_mapping(tmp_path):
    """Test a YAML file must hold a mapping."""
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ValueError):
        load_yaml_config(path)


def test_load_settings_yaml_overlay(tmp_path):
    """Test YAML values are merged over defaults section by section."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "retention_manager:\n"
        "  enabled: true\n"
        "  batch_size: 100\n"
        "observability:\n"
        "  log_format: console\n"
    )

    settings = load_settings(path)

    assert settings.retention_manager.enabled is True
    assert settings.retention_manager.batch_size == 100
    assert settings.retention_manager.interval_ms == 30000
    assert settings.observability.log_format == "console"
    assert str(settings.redis.url).startswith("redis://")


def test_get_settings_cached():
    """Test that get_settings returns cached instance."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_reload_settings():
    """Test that reload_settings clears cache."""
    settings1 = get_settings()
    settings2 = reload_settings()

    # They should be different instances with same values
    assert settings1 is not settings2
    assert settings1.app_name == settings2.app_name
