"""Text-to-speech streaming routes backed by ElevenLabs."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Response,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..schemas.tts import TTSRequest
from ..services.elevenlabs import ElevenLabsStream, ElevenLabsStreamer, TTSProviderError
from ..services.tts_relay import TTSRelaySession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["tts"])

NO_TEXT_MESSAGE = "No text provided"
MISSING_CREDENTIALS_MESSAGE = "ElevenLabs credentials missing"


class MalformedMessage(ValueError):
    """The client's request message could not be understood."""


def get_tts_streamer(
    settings: Settings = Depends(get_settings),
) -> ElevenLabsStreamer:
    return ElevenLabsStreamer(settings)


@router.post("/tts", response_model=None)
async def stream_tts(
    payload: TTSRequest,
    streamer: ElevenLabsStreamer = Depends(get_tts_streamer),
) -> StreamingResponse:
    """Stream synthesized audio back as a chunked `audio/mpeg` body."""

    text = payload.text or ""
    if not text.strip():
        raise HTTPException(status_code=400, detail=NO_TEXT_MESSAGE)
    if streamer.missing_credentials:
        logger.error("ElevenLabs credentials not configured")
        raise HTTPException(status_code=503, detail=MISSING_CREDENTIALS_MESSAGE)

    try:
        stream = await streamer.start(text)
    except TTSProviderError as exc:
        logger.error("Server TTS error: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return StreamingResponse(_iter_audio(stream), media_type="audio/mpeg")


async def _iter_audio(stream: ElevenLabsStream) -> AsyncIterator[bytes]:
    try:
        async for frame in stream.frames():
            yield frame
    except TTSProviderError as exc:
        # Headers are already sent; ending the body is the only signal left.
        logger.error("ElevenLabs streaming error: %s", exc)
    finally:
        await stream.close()


@router.get("/tts-stream", include_in_schema=False)
async def tts_stream_probe() -> Response:
    """Plain HTTP requests to the streaming path get an empty 200."""

    return Response(status_code=200)


@router.websocket("/tts-stream")
async def tts_stream(
    websocket: WebSocket,
    streamer: ElevenLabsStreamer = Depends(get_tts_streamer),
) -> None:
    """Accept one JSON request, then relay provider audio frames to the client."""

    await websocket.accept()

    try:
        text = await _receive_text(websocket)
    except WebSocketDisconnect:
        logger.info("TTS stream client left before sending a request")
        return
    except MalformedMessage as exc:
        logger.warning("Malformed TTS stream message: %s", exc)
        await _reject(websocket, str(exc))
        return

    if not text.strip():
        await _reject(websocket, NO_TEXT_MESSAGE)
        return

    if streamer.missing_credentials:
        logger.error("ElevenLabs credentials not configured")
        await _reject(websocket, MISSING_CREDENTIALS_MESSAGE)
        return

    session = TTSRelaySession(websocket, streamer, text)
    logger.info(
        "TTS relay session %s started (%d chars)", session.session_id, len(text)
    )
    state = await session.run()
    logger.info(
        "TTS relay session %s ended in state %s", session.session_id, state.value
    )


async def _receive_text(websocket: WebSocket) -> str:
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))

    raw = message.get("text")
    if raw is None:
        data = message.get("bytes") or b""
        try:
            raw = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage("Message is not valid UTF-8") from exc

    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedMessage(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(decoded, dict):
        raise MalformedMessage("Message must be a JSON object")

    try:
        request = TTSRequest.model_validate(decoded)
    except ValidationError as exc:
        raise MalformedMessage("Field 'text' must be a string") from exc
    return request.text or ""


async def _reject(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"error": message})
    await websocket.close()


__all__ = ["get_tts_streamer", "router"]
