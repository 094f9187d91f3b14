"""Tests for configuration module."""

from __future__ import annotations

from core.config import Settings, get_database_url, get_settings, _ENV_PROFILES


def test_settings_dataclass():
    s = Settings(database_url="postgres://localhost/test")
    assert s.database_url == "postgres://localhost/test"
    assert s.app_env == "dev"
    assert s.default_timezone == "UTC"
    assert s.request_id_header_name == "X-Request-ID"
    assert s.cors_origins == []
    assert s.generated_sessions_page_size == 20


def test_settings_frozen():
    s = Settings(database_url="x")
    try:
        s.database_url = "y"
        assert False, "Should raise"
    except AttributeError:
        pass


def test_settings_is_production():
    s = Settings(database_url="x", app_env="production")
    assert s.is_production is True
    assert s.is_dev is False


def test_settings_is_dev():
    s = Settings(database_url="x", app_env="dev")
    assert s.is_dev is True
    assert s.is_production is False


def test_get_database_url_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://from-env/db")
    assert get_database_url() == "postgres://from-env/db"


def test_get_database_url_default(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    url = get_database_url()
    assert "postgresql" in url


def test_get_settings_uses_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEFAULT_TIMEZONE", "Europe/London")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, ,https://b.example")
    s = get_settings()
    assert s.database_url == "postgres://test/db"
    assert s.app_env == "production"
    assert s.default_timezone == "Europe/London"
    assert s.cors_origins == ["https://a.example", "https://b.example"]


def test_env_profiles_exist():
    assert "dev" in _ENV_PROFILES
    assert "test" in _ENV_PROFILES
    assert "staging" in _ENV_PROFILES
    assert "production" in _ENV_PROFILES


def test_dev_profile_debug_logging():
    assert _ENV_PROFILES["dev"]["log_level"] == "DEBUG"


def test_settings_profile_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://test/db")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    s = get_settings()
    assert s.log_level == "WARNING"


def test_unknown_env_falls_back_to_dev_profile(monkeypatch):
    monkeypatch.setenv("APP_ENV", "qa")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    s = get_settings()
    assert s.app_env == "qa"
    assert s.log_level == "DEBUG"


def test_page_size_from_env(monkeypatch):
    monkeypatch.setenv("GENERATED_SESSIONS_PAGE_SIZE", "5")
    monkeypatch.setenv("GENERATED_SESSIONS_MAX_PAGE_SIZE", "10")
    s = get_settings()
    assert s.generated_sessions_page_size == 5
    assert s.generated_sessions_max_page_size == 10
