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

    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )
    port: int = Field(
        default=4000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("PORT", "port"),
    )
    # Browser origin allowed to call the API cross-origin
    cors_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("CORS_ORIGIN", "FRONTEND_URL", "cors_origin"),
    )

    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_MODEL", "gemini_model"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )
    request_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "GEMINI_TIMEOUT", "timeout"),
    )

    elevenlabs_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
    )
    elevenlabs_voice_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_VOICE_ID", "elevenlabs_voice_id"),
    )
    elevenlabs_ws_base_url: str = Field(
        default="wss://api.elevenlabs.io/v1/text-to-speech",
        validation_alias=AliasChoices(
            "ELEVENLABS_WS_BASE_URL", "elevenlabs_ws_base_url"
        ),
    )
    elevenlabs_open_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices(
            "ELEVENLABS_OPEN_TIMEOUT", "elevenlabs_open_timeout"
        ),
    )

    # Fixed synthesis parameters sent with every TTS request
    tts_stability: float = Field(
        default=0.3,
        ge=0,
        le=1,
        validation_alias=AliasChoices("TTS_STABILITY", "tts_stability"),
    )
    tts_similarity_boost: float = Field(
        default=0.85,
        ge=0,
        le=1,
        validation_alias=AliasChoices("TTS_SIMILARITY_BOOST", "tts_similarity_boost"),
    )
    tts_optimize_streaming_latency: int = Field(
        default=2,
        ge=0,
        le=4,
        validation_alias=AliasChoices(
            "TTS_OPTIMIZE_STREAMING_LATENCY", "tts_optimize_streaming_latency"
        ),
    )

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.get_secret_value())

    @property
    def elevenlabs_configured(self) -> bool:
        return bool(
            self.elevenlabs_voice_id
            and self.elevenlabs_api_key
            and self.elevenlabs_api_key.get_secret_value()
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
