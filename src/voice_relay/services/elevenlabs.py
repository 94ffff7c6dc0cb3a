"""ElevenLabs streaming text-to-speech connection."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    InvalidStatus,
    WebSocketException,
)
from websockets.protocol import State

from ..config import Settings
from ..schemas.tts import SynthesisRequest, VoiceSettings

logger = logging.getLogger(__name__)


class TTSProviderError(Exception):
    """Wrap handshake, send, or stream failures from the TTS provider."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class ElevenLabsStream:
    """One open provider connection, owned by a single relay session."""

    def __init__(self, connection: ClientConnection, voice_id: str):
        self._connection = connection
        self.voice_id = voice_id

    @property
    def is_open(self) -> bool:
        return self._connection.state is State.OPEN

    async def send_request(self, request: SynthesisRequest) -> None:
        try:
            await self._connection.send(request.model_dump_json())
        except ConnectionClosed as exc:
            raise TTSProviderError(f"ElevenLabs connection closed: {exc}") from exc

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield audio frames in arrival order until the provider closes.

        A clean close ends the iteration; an abnormal close raises
        `TTSProviderError`. Text frames are passed through as UTF-8 bytes.
        """

        try:
            async for message in self._connection:
                if isinstance(message, str):
                    message = message.encode("utf-8")
                yield message
        except ConnectionClosedError as exc:
            raise TTSProviderError(f"ElevenLabs stream failed: {exc}") from exc

    async def close(self) -> None:
        if self.is_open:
            await self._connection.close()


class ElevenLabsStreamer:
    """Open streaming connections to ElevenLabs using configured credentials."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def missing_credentials(self) -> bool:
        return not self._settings.elevenlabs_configured

    @property
    def stream_url(self) -> str:
        base = self._settings.elevenlabs_ws_base_url.rstrip("/")
        return f"{base}/{self._settings.elevenlabs_voice_id}/stream"

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.elevenlabs_api_key
        return {
            "xi-api-key": api_key.get_secret_value() if api_key else "",
            "Content-Type": "application/json",
        }

    def synthesis_request(self, text: str) -> SynthesisRequest:
        return SynthesisRequest(
            text=text,
            voice_settings=VoiceSettings(
                stability=self._settings.tts_stability,
                similarity_boost=self._settings.tts_similarity_boost,
            ),
            optimize_streaming_latency=self._settings.tts_optimize_streaming_latency,
        )

    async def open(self) -> ElevenLabsStream:
        """Open the provider connection. No retry is attempted."""

        if self.missing_credentials:
            raise TTSProviderError("ElevenLabs credentials missing")

        voice_id = self._settings.elevenlabs_voice_id or ""
        logger.info("Opening ElevenLabs stream for voice %s", voice_id)
        try:
            connection = await connect(
                self.stream_url,
                additional_headers=self._headers,
                open_timeout=self._settings.elevenlabs_open_timeout,
                max_size=None,
            )
        except InvalidStatus as exc:
            status_code = exc.response.status_code
            raise TTSProviderError(
                f"ElevenLabs rejected the connection (HTTP {status_code})",
                status_code=status_code,
            ) from exc
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            detail = str(exc) or exc.__class__.__name__
            raise TTSProviderError(
                f"Failed to connect to ElevenLabs: {detail}"
            ) from exc
        return ElevenLabsStream(connection, voice_id)

    async def start(self, text: str) -> ElevenLabsStream:
        """Open a connection and send the synthesis request for ``text``."""

        stream = await self.open()
        try:
            await stream.send_request(self.synthesis_request(text))
        except TTSProviderError:
            await stream.close()
            raise
        return stream


__all__ = ["ElevenLabsStream", "ElevenLabsStreamer", "TTSProviderError"]
