"""Tests for application configuration and settings.

This module contains unit tests for the Settings Pydantic model in
cogmosaic.core.config. It ensures that default values, environment
overrides, field validation, the access token header and get_settings
caching work as expected.
"""

from __future__ import annotations

import pydantic
import pytest

from cogmosaic.core import config
from cogmosaic.mosaic import alignment


def test_settings_defaults() -> None:
    """Test that Settings has expected default values."""
    settings = config.Settings()
    assert settings.default_block_size == 256
    assert settings.resolution_tolerance == 0.02
    assert settings.render_tile_size_tolerance == 0.01
    assert settings.source_tile_size_tolerance == 0.0
    assert settings.allow_origins == ["*"]
    assert settings.access_token is None
    assert settings.log_level == "INFO"
    assert settings.log_json is False


def test_settings_environment_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("DEFAULT_BLOCK_SIZE", "512")
    monkeypatch.setenv("RESOLUTION_TOLERANCE", "0.05")
    monkeypatch.setenv("LOG_JSON", "true")
    settings = config.Settings()
    assert settings.default_block_size == 512
    assert settings.resolution_tolerance == 0.05
    assert settings.log_json is True


def test_settings_rejects_invalid_block_size() -> None:
    """Test that a non-positive block size is rejected."""
    with pytest.raises(pydantic.ValidationError):
        config.Settings(default_block_size=0)


def test_settings_rejects_negative_tolerance() -> None:
    """Test that tolerances cannot be negative."""
    with pytest.raises(pydantic.ValidationError):
        config.Settings(resolution_tolerance=-0.1)


def test_auth_headers() -> None:
    """Test the bearer header built from the access token."""
    assert config.Settings().auth_headers() == {}
    settings = config.Settings(access_token="secret")
    assert settings.auth_headers() == {"Authorization": "Bearer secret"}


def test_tolerances_from_settings() -> None:
    """Test that alignment tolerances follow the settings."""
    settings = config.Settings(
        default_block_size=512,
        resolution_tolerance=0.05,
        render_tile_size_tolerance=0.02,
        source_tile_size_tolerance=0.1,
    )
    tolerances = alignment.Tolerances.from_settings(settings)
    assert tolerances == alignment.Tolerances(
        resolution=0.05,
        render_tile_size=0.02,
        source_tile_size=0.1,
        default_block_size=512,
    )


def test_get_settings_cached() -> None:
    """Test that get_settings returns cached instance."""
    config.get_settings.cache_clear()
    settings1 = config.get_settings()
    settings2 = config.get_settings()
    assert settings1 is settings2
    config.get_settings.cache_clear()
