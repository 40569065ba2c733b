"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    supabase_audio_bucket: str = "assessment-audio"
    admin_token: str
    openai_api_key: str
    openai_model: str = "gpt-4.1-mini"
    openai_tts_model: str = "gpt-4o-mini-tts"
    openai_tts_voice: str = "alloy"
    assessment_duration_seconds: int = 1200
    session_ttl_hours: int = 24
    resource_ttl_seconds: int = 3600
    sweep_interval_seconds: int = 1800
    collaborator_timeout_seconds: float = 30.0
    collaborator_max_attempts: int = 2
    collaborator_backoff_seconds: float = 2.0
    storage_max_attempts: int = 3
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_owner_id(raw: str | None) -> str | None:
    """Normalize an owner id taken from a request header."""
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None
