"""
Configuration settings for the coco-coach session runner.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is read with the COCO_ prefix (e.g. COCO_DEVICE_ID).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COCO_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Identity
    # ========================================
    device_id: str = Field(
        default="unknown-device",
        description="Device identifier reported with every payload",
    )
    participant_id: str | None = Field(
        default=None,
        description="Participant the device is assigned to",
    )
    user_external_id: str | None = Field(
        default=None,
        description="External user id (profile key); falls back to participant_id",
    )

    # ========================================
    # Backend
    # ========================================
    backend_url: str | None = Field(
        default=None,
        description="Base URL of the ingest backend; sends are skipped when unset",
    )
    ingest_token: str | None = Field(
        default=None,
        description="Bearer token for the ingest endpoints",
    )
    backend_timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound on a single summary delivery, retries included",
    )

    # ========================================
    # External API policy
    # ========================================
    api_timeout_ms: int = Field(
        default=30000,
        description="Per-request timeout for TTS/STT/LLM/backend calls",
    )
    api_retries: int = Field(
        default=2,
        description="Retries after the first attempt for transient failures",
    )
    retry_delay_ms: int = Field(
        default=500,
        description="Fixed delay between retry attempts",
    )

    # ========================================
    # Audio
    # ========================================
    sample_rate: int = Field(default=24000, description="PCM sample rate (Hz)")
    channels: int = Field(default=1, description="PCM channel count")
    sample_format: str = Field(default="S16_LE", description="ALSA sample format")
    output_device: str = Field(default="pulse", description="ALSA playback device")
    input_device: str = Field(default="pulse", description="ALSA capture device")
    audio_disabled: bool = Field(
        default=False,
        description="Skip playback/capture entirely (bench testing)",
    )

    # ─── Recording windows ──────────────────────────────────────────────────────
    initial_record_seconds: int = Field(
        default=30,
        description="Initial cap for a normal listen",
    )
    max_record_seconds: int = Field(
        default=60,
        description="Hard cap after the one-time extension",
    )
    extend_if_speaking_within_ms: int = Field(
        default=3000,
        description="Extend the window if speech was heard this recently at the cap",
    )
    silence_threshold: int = Field(
        default=500,
        description="RMS below this counts as silence",
    )
    silence_duration_ms: int = Field(
        default=2500,
        description="Sustained silence after speech that ends a listen",
    )
    min_speech_rms: int = Field(
        default=300,
        description="Recordings quieter than this peak are not transcribed",
    )

    # ========================================
    # Models
    # ========================================
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model for follow-ups")
    tts_model: str = Field(default="tts-1", description="Speech synthesis model")
    tts_voice: str = Field(default="nova", description="Speech synthesis voice")
    stt_model: str = Field(default="whisper-1", description="Transcription model")
    stt_language: str = Field(default="en", description="Transcription language")

    # ========================================
    # Content & Profiles
    # ========================================
    content_library_path: str | None = Field(
        default=None,
        description="Override for the packaged activities.json",
    )
    profiles_dir: str = Field(
        default=str(Path.home() / ".coco" / "profiles"),
        description="Directory holding <user_external_id>.json profiles",
    )

    # ========================================
    # Session guard
    # ========================================
    max_session_seconds: int = Field(
        default=1800,
        description="Sessions still running after this are aborted with error_exit",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(default="INFO", description="loguru level for stderr")
    log_file: str | None = Field(default=None, description="Optional log file sink")
    log_rotation: str = Field(default="10 MB", description="loguru rotation for log_file")

    @property
    def resolved_user_external_id(self) -> str | None:
        return self.user_external_id or self.participant_id

    def get_retry_config(self) -> dict[str, Any]:
        """Get retry policy as keyword arguments for with_retry()."""
        return {
            "max_retries": self.api_retries,
            "delay_seconds": self.retry_delay_ms / 1000.0,
        }

    def get_audio_config(self) -> dict[str, Any]:
        """Get ALSA playback/capture configuration as a dictionary."""
        return {
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "sample_format": self.sample_format,
            "output_device": self.output_device,
            "input_device": self.input_device,
            "disabled": self.audio_disabled,
        }

    def get_recording_config(self) -> dict[str, Any]:
        """Get listen-window policy as a dictionary."""
        return {
            "initial_seconds": self.initial_record_seconds,
            "max_seconds": self.max_record_seconds,
            "extend_if_speaking_within_ms": self.extend_if_speaking_within_ms,
            "silence_threshold": self.silence_threshold,
            "silence_duration_ms": self.silence_duration_ms,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
