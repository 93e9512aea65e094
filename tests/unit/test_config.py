"""
Unit tests for configuration loading.

Tests cover:
- Resource profiles
- Environment overrides and their fallbacks
- Validation
"""

import pytest

from academy.academy_db.config import (
    DEVELOPMENT_COOKIE_SECRET,
    ONE_GIB,
    ONE_MIB,
    AppConfig,
    CookieConfig,
    ProfileName,
    ResourceProfile,
    StorageConfig,
)

_ENV_VARS = [
    "ACADEMY_DB_MAP_SIZE",
    "ACADEMY_DB_MAX_READERS",
    "ACADEMY_DB_MAX_STORES",
    "ACADEMY_DB_MAX_WRITERS",
    "ACADEMY_COOKIE_SECRET",
    "ACADEMY_ENV",
    "LOW_RESOURCE_MODE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without overrides."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestResourceProfile:
    """Tests for profile selection."""

    def test_low_memory_host(self):
        profile = ResourceProfile.for_memory(512 * ONE_MIB)
        assert profile.name == ProfileName.LOW
        assert (profile.map_size, profile.max_readers, profile.max_stores) == (64 * ONE_MIB, 64, 4)

    def test_medium_memory_host(self):
        profile = ResourceProfile.for_memory(2 * ONE_GIB)
        assert profile.name == ProfileName.MEDIUM
        assert (profile.map_size, profile.max_readers, profile.max_stores) == (96 * ONE_MIB, 128, 8)

    def test_high_memory_host(self):
        profile = ResourceProfile.for_memory(16 * ONE_GIB)
        assert profile.name == ProfileName.HIGH
        assert (profile.map_size, profile.max_readers, profile.max_stores) == (128 * ONE_MIB, 256, 16)

    def test_low_resource_mode_forces_low(self):
        assert ResourceProfile.for_memory(16 * ONE_GIB, low_resource=True).name == ProfileName.LOW


class TestStorageConfig:
    """Tests for StorageConfig.from_env."""

    @pytest.fixture
    def high(self):
        return ResourceProfile.for_memory(16 * ONE_GIB)

    def test_defaults_come_from_profile(self, high):
        config = StorageConfig.from_env(high)
        assert config.map_size == high.map_size
        assert config.max_readers == high.max_readers
        assert config.max_stores == high.max_stores
        assert config.max_writers == 1
        assert config.profile == ProfileName.HIGH

    def test_capacity_override_keeps_reader_budget(self, monkeypatch, high):
        """Overriding only the map size never shrinks max_readers."""
        monkeypatch.setenv("ACADEMY_DB_MAP_SIZE", str(32 * ONE_MIB))
        config = StorageConfig.from_env(high)
        assert config.map_size == 32 * ONE_MIB
        assert config.max_readers == 256

    def test_unparsable_override_falls_back(self, monkeypatch, high):
        monkeypatch.setenv("ACADEMY_DB_MAX_READERS", "lots")
        assert StorageConfig.from_env(high).max_readers == 256

    def test_reader_override_applies(self, monkeypatch, high):
        monkeypatch.setenv("ACADEMY_DB_MAX_READERS", "512")
        assert StorageConfig.from_env(high).max_readers == 512


class TestAppConfig:
    """Tests for AppConfig validation."""

    def test_development_secret_allowed_outside_production(self):
        config = AppConfig()
        config.validate()
        assert config.cookie.secret == DEVELOPMENT_COOKIE_SECRET

    def test_development_secret_rejected_in_production(self):
        config = AppConfig(environment="production")
        with pytest.raises(ValueError, match="ACADEMY_COOKIE_SECRET"):
            config.validate()

    def test_production_with_secret(self):
        config = AppConfig(environment="production", cookie=CookieConfig(secret="s3cret"))
        config.validate()

    def test_non_positive_sizes_rejected(self):
        config = AppConfig(storage=StorageConfig(max_readers=0))
        with pytest.raises(ValueError):
            config.validate()

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ACADEMY_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ACADEMY_COOKIE_SECRET", "from-env")
        monkeypatch.setenv("ACADEMY_DEFAULT_ID", "main-academy")
        config = AppConfig.from_env()
        assert config.storage.data_dir == str(tmp_path)
        assert config.cookie.secret == "from-env"
        assert config.cookie.max_age == 60 * 60 * 24 * 30
        assert config.bootstrap.default_academy_id == "main-academy"
