"""
Test configuration settings to ensure all required fields are present.
"""
from importlib import reload

import pytest


def test_quiz_settings_defaults():
    """Quiz-taking settings have safe defaults."""
    from src.infrastructure.config import settings

    assert settings.ENFORCE_TIME_LIMIT is True
    assert settings.TIME_LIMIT_GRACE_SECONDS == 30
    assert settings.ATTEMPT_SAVE_RETRIES == 5
    assert settings.MIN_PASSWORD_LENGTH == 6


def test_cors_origins_are_split():
    from src.infrastructure.config import Settings

    config = Settings(CORS_ORIGINS="http://a.test, http://b.test,")
    assert config.cors_origins == ["http://a.test", "http://b.test"]


def test_production_requires_real_secret_key(monkeypatch):
    """The placeholder SECRET_KEY must never reach production."""
    import src.infrastructure.config as config_module

    monkeypatch.setenv('FLASK_ENV', 'production')
    monkeypatch.setenv('SECRET_KEY', 'change-this-to-a-very-secret-key-in-production')
    with pytest.raises(ValueError):
        reload(config_module)

    monkeypatch.setenv('FLASK_ENV', 'testing')
    monkeypatch.setenv('SECRET_KEY', 'test-secret-key')
    reload(config_module)


def test_production_rejects_debug(monkeypatch):
    import src.infrastructure.config as config_module

    monkeypatch.setenv('FLASK_ENV', 'production')
    monkeypatch.setenv('SECRET_KEY', 'a-real-secret')
    monkeypatch.setenv('DEBUG', 'true')
    with pytest.raises(ValueError):
        reload(config_module)

    monkeypatch.setenv('FLASK_ENV', 'testing')
    monkeypatch.setenv('DEBUG', 'false')
    reload(config_module)
