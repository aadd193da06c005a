"""Tests for environment-driven configuration."""

from pathlib import Path

from speechbridge.config import Settings
from speechbridge.services.pipeline.scheduler import PacingConfig


def test_defaults(monkeypatch):
    for name in ("GEMINI_API_KEY", "API_KEY", "SUPABASE_URL", "SUPABASE_KEY", "LOW_WATER_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.gemini_api_key is None
    assert settings.tts_model == "gemini-2.5-flash-preview-tts"
    assert settings.supabase_configured is False
    assert settings.low_water_seconds == 3.0
    assert settings.arrival_timeout == 15.0
    assert settings.speech_settings_path == Path("data/speech_settings.json")


def test_environment_aliases(monkeypatch):
    monkeypatch.setenv("API_KEY", "key-from-env")
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "anon")
    monkeypatch.setenv("LOW_WATER_SECONDS", "1.5")
    monkeypatch.setenv("DRAIN_QUEUE_ON_DISCONNECT", "true")

    settings = Settings(_env_file=None)

    assert settings.gemini_api_key.get_secret_value() == "key-from-env"
    assert settings.supabase_configured is True
    assert settings.drain_queue_on_disconnect is True
    assert PacingConfig.from_settings(settings).low_water_seconds == 1.5
