import pytest
from pydantic import ValidationError

from repricer.db import Settings


def test_log_level_and_cors_origins_come_from_settings():
    settings = Settings(
        DATABASE_URL="sqlite://",
        LOG_LEVEL="debug",
        CORS_ALLOWED_ORIGINS=" https://admin.example.com, ,https://shop.example.com ",
    )

    assert settings.log_level == "debug"
    assert settings.CORS_ORIGINS == ["https://admin.example.com", "https://shop.example.com"]


def test_defaults(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("CORS_ALLOWED_ORIGINS", raising=False)
    settings = Settings(DATABASE_URL="sqlite://", _env_file=None)

    assert settings.log_level == "INFO"
    assert settings.CORS_ORIGINS == []
    assert settings.APPLY_WAVE_DELAY_SECONDS == 0.5


def test_rejects_empty_waves():
    with pytest.raises(ValidationError):
        Settings(DATABASE_URL="sqlite://", APPLY_WAVE_SIZE=0, _env_file=None)
