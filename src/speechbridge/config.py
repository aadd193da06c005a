"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Gemini (synthesis + script preparation)
    gemini_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "gemini_api_key"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )
    tts_model: str = Field(
        default="gemini-2.5-flash-preview-tts",
        validation_alias=AliasChoices("GEMINI_TTS_MODEL", "tts_model"),
    )
    script_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_FLASH_MODEL", "script_model"),
    )
    synthesis_timeout_seconds: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("SYNTHESIS_TIMEOUT", "synthesis_timeout_seconds"),
    )
    audio_sample_rate: int = Field(
        default=24000,
        ge=8000,
        le=48000,
        validation_alias=AliasChoices("AUDIO_SAMPLE_RATE", "audio_sample_rate"),
    )

    # Supabase transcript source
    supabase_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "supabase_url"),
    )
    supabase_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_KEY", "supabase_key"),
    )
    transcripts_table: str = Field(
        default="transcripts",
        validation_alias=AliasChoices(
            "SUPABASE_TRANSCRIPTS_TABLE", "transcripts_table"
        ),
    )
    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        validation_alias=AliasChoices(
            "TRANSCRIPT_POLL_INTERVAL", "poll_interval_seconds"
        ),
    )
    webhook_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("TRANSCRIPT_WEBHOOK_SECRET", "webhook_secret"),
    )

    # Pacing
    arrival_poll_interval: float = Field(
        default=0.1,
        gt=0,
        validation_alias=AliasChoices("ARRIVAL_POLL_INTERVAL", "arrival_poll_interval"),
    )
    arrival_epsilon: float = Field(
        default=0.1,
        ge=0,
        validation_alias=AliasChoices("ARRIVAL_EPSILON", "arrival_epsilon"),
    )
    arrival_timeout: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices("ARRIVAL_TIMEOUT", "arrival_timeout"),
    )
    pipelining_poll_interval: float = Field(
        default=0.2,
        gt=0,
        validation_alias=AliasChoices(
            "PIPELINING_POLL_INTERVAL", "pipelining_poll_interval"
        ),
    )
    low_water_seconds: float = Field(
        default=3.0,
        ge=0,
        validation_alias=AliasChoices("LOW_WATER_SECONDS", "low_water_seconds"),
    )
    pipelining_timeout: float = Field(
        default=120.0,
        gt=0,
        validation_alias=AliasChoices("PIPELINING_TIMEOUT", "pipelining_timeout"),
    )

    # Lifecycle
    drain_queue_on_disconnect: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "DRAIN_QUEUE_ON_DISCONNECT", "drain_queue_on_disconnect"
        ),
    )
    dedup_history_size: int = Field(
        default=256,
        ge=1,
        validation_alias=AliasChoices("DEDUP_HISTORY_SIZE", "dedup_history_size"),
    )
    autoconnect: bool = Field(
        default=True,
        validation_alias=AliasChoices("PIPELINE_AUTOCONNECT", "autoconnect"),
    )

    speech_settings_path: Path = Field(
        default_factory=lambda: Path("data/speech_settings.json"),
        validation_alias=AliasChoices("SPEECH_SETTINGS_PATH", "speech_settings_path"),
    )

    @property
    def supabase_configured(self) -> bool:
        return self.supabase_url is not None and self.supabase_key is not None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
