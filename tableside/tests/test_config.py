import pytest

import config


@pytest.fixture(autouse=True)
def fresh_settings():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def test_defaults(monkeypatch):
    for key in ("DATABASE_URL", "VIEWER_TIMEOUT_SECS", "CONFLICT_RETRIES", "REDIS_URL"):
        monkeypatch.delenv(key, raising=False)
    settings = config.get_settings()
    assert settings.database_url.startswith("sqlite+aiosqlite://")
    assert settings.viewer_timeout_secs == 1800
    assert settings.conflict_retries == 3
    assert settings.redis_url is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CONFLICT_RETRIES", "5")
    monkeypatch.setenv("BROADCAST_WRITE_TIMEOUT_SECS", "0.5")
    monkeypatch.setenv("RECEIPT_RESTAURANT_NAME", "Chez Nous")
    settings = config.get_settings()
    assert settings.conflict_retries == 5
    assert settings.broadcast_write_timeout_secs == 0.5
    assert settings.receipt_restaurant_name == "Chez Nous"


def test_settings_are_cached():
    assert config.get_settings() is config.get_settings()
