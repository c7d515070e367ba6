"""Tests for environment-driven settings."""

from comp_admin.config import Settings


def test_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///comp.db")
    monkeypatch.setenv("BASE_CURRENCY", "usd")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("DEBUG", "TRUE")

    settings = Settings.from_env()

    assert settings.database_url == "sqlite+aiosqlite:///comp.db"
    assert settings.base_currency == "USD"
    assert settings.log_level == "DEBUG"
    assert (settings.host, settings.port, settings.debug) == ("127.0.0.1", 9000, True)
    assert not hasattr(settings, "HOST")
