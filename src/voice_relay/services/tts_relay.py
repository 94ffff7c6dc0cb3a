"""
Bidirectional audio relay between a client WebSocket and the TTS provider.

Each session pairs one client connection with one provider connection:

    provider → _read_provider() → frames queue → _write_client() → client

A third task watches the client for a disconnect. Whichever side finishes
first decides how the session ends:

- provider closes cleanly      → client is closed
- provider errors              → client gets {"error": ...}, then is closed
- client disconnects           → provider is closed if still open

Frames are forwarded one at a time in arrival order; the queue only hands
frames from the reading task to the writing task.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Protocol, Union

from starlette.websockets import WebSocketDisconnect

from .elevenlabs import ElevenLabsStream, ElevenLabsStreamer, TTSProviderError

logger = logging.getLogger(__name__)


class RelayState(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERRORED = "errored"


_TRANSITIONS: dict[RelayState, frozenset[RelayState]] = {
    RelayState.PENDING: frozenset({RelayState.STREAMING, RelayState.ERRORED}),
    RelayState.STREAMING: frozenset({RelayState.CLOSED, RelayState.ERRORED}),
    RelayState.ERRORED: frozenset({RelayState.CLOSED}),
    RelayState.CLOSED: frozenset(),
}


class RelayStateError(RuntimeError):
    """Raised on a lifecycle transition the relay does not allow."""


class ClientConnection(Protocol):
    async def receive(self) -> dict[str, Any]: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def send_json(self, data: Any, mode: str = "text") -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


QueueItem = Union[bytes, TTSProviderError, None]


class TTSRelaySession:
    """Relay state for one streaming-audio request."""

    def __init__(
        self,
        websocket: ClientConnection,
        streamer: ElevenLabsStreamer,
        text: str,
        *,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.websocket = websocket
        self.streamer = streamer
        self.text = text
        self.state = RelayState.PENDING
        self.frames_forwarded = 0

        self._stream: Optional[ElevenLabsStream] = None
        self._client_open = True

    def _transition(self, new_state: RelayState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RelayStateError(
                f"Illegal relay transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "Relay %s: %s -> %s", self.session_id, self.state.value, new_state.value
        )
        self.state = new_state

    async def run(self) -> RelayState:
        """Open the provider connection and relay frames until either side ends."""

        try:
            self._stream = await self.streamer.open()
            self._transition(RelayState.STREAMING)
            logger.info("Relay %s: provider connection open", self.session_id)
            await self._stream.send_request(self.streamer.synthesis_request(self.text))
        except TTSProviderError as exc:
            await self._fail(exc)
            return self.state

        frames: asyncio.Queue[QueueItem] = asyncio.Queue()
        reader = asyncio.create_task(self._read_provider(frames))
        writer = asyncio.create_task(self._write_client(frames))
        watcher = asyncio.create_task(self._watch_client())
        tasks = (reader, writer, watcher)

        outcome: Optional[TTSProviderError] = None
        try:
            done, _ = await asyncio.wait(
                {writer, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
            if writer in done:
                try:
                    outcome = writer.result()
                except (WebSocketDisconnect, RuntimeError) as exc:
                    logger.info(
                        "Relay %s: client send failed (%s)", self.session_id, exc
                    )
                    self._client_open = False
            if watcher in done:
                self._client_open = False
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if not self._client_open:
            logger.info(
                "Relay %s: client closed after %d frames",
                self.session_id,
                self.frames_forwarded,
            )
            await self._close_provider()
            self._transition(RelayState.CLOSED)
        elif outcome is not None:
            await self._fail(outcome)
        else:
            logger.info(
                "Relay %s: provider finished after %d frames",
                self.session_id,
                self.frames_forwarded,
            )
            await self._close_provider()
            await self._close_client()
            self._transition(RelayState.CLOSED)
        return self.state

    async def _read_provider(self, frames: asyncio.Queue[QueueItem]) -> None:
        assert self._stream is not None
        try:
            async for frame in self._stream.frames():
                await frames.put(frame)
        except TTSProviderError as exc:
            await frames.put(exc)
        except Exception as exc:
            logger.exception("Relay %s: provider read loop failed", self.session_id)
            await frames.put(TTSProviderError(f"Unexpected relay error: {exc}"))
        else:
            # None signals end of stream
            await frames.put(None)

    async def _write_client(
        self, frames: asyncio.Queue[QueueItem]
    ) -> Optional[TTSProviderError]:
        while True:
            item = await frames.get()
            if item is None or isinstance(item, TTSProviderError):
                return item
            await self.websocket.send_bytes(item)
            self.frames_forwarded += 1

    async def _watch_client(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message.get("type") == "websocket.disconnect":
                return
            logger.debug("Relay %s: ignoring extra client message", self.session_id)

    async def _fail(self, exc: TTSProviderError) -> None:
        self._transition(RelayState.ERRORED)
        logger.error("Relay %s: ElevenLabs streaming error: %s", self.session_id, exc)
        await self._close_provider()
        if self._client_open:
            try:
                await self.websocket.send_json({"error": str(exc)})
            except (WebSocketDisconnect, RuntimeError):
                self._client_open = False
        await self._close_client()
        self._transition(RelayState.CLOSED)

    async def _close_provider(self) -> None:
        if self._stream is not None and self._stream.is_open:
            await self._stream.close()

    async def _close_client(self) -> None:
        if not self._client_open:
            return
        self._client_open = False
        try:
            await self.websocket.close()
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Relay %s: client already closed (%s)", self.session_id, exc)


__all__ = ["RelayState", "RelayStateError", "TTSRelaySession"]
