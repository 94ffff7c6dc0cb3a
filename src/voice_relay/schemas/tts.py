"""Pydantic models for text-to-speech requests."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TTSRequest(BaseModel):
    """Text to synthesize, sent by the client over HTTP or as the first WebSocket message."""

    text: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class VoiceSettings(BaseModel):
    stability: float = Field(ge=0, le=1)
    similarity_boost: float = Field(ge=0, le=1)


class SynthesisRequest(BaseModel):
    """Payload sent to the TTS provider once its connection is open."""

    text: str
    voice_settings: VoiceSettings
    optimize_streaming_latency: int = Field(ge=0, le=4)


__all__ = ["SynthesisRequest", "TTSRequest", "VoiceSettings"]
