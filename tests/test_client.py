from __future__ import annotations

import json
from pathlib import Path

import pytest

from voice_relay.client import SpeechPlayback, receive_audio, to_ws_url


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def _messages(*items):
    for item in items:
        yield item


@pytest.mark.parametrize(
    ("server", "expected"),
    [
        ("http://localhost:4000", "ws://localhost:4000"),
        ("https://voice.example.com", "wss://voice.example.com"),
        ("ws://already", "ws://already"),
    ],
)
def test_to_ws_url(server: str, expected: str) -> None:
    assert to_ws_url(server) == expected


@pytest.mark.anyio
async def test_receive_audio_writes_frames_in_order(tmp_path: Path) -> None:
    playback = SpeechPlayback(path=tmp_path / "out" / "reply-1.mp3")

    await receive_audio(playback, _messages(b"one-", b"two-", b"three"))

    assert playback.path.read_bytes() == b"one-two-three"
    assert playback.frames == 3
    assert playback.bytes_received == 13
    assert playback.ok is True


@pytest.mark.anyio
async def test_receive_audio_records_server_error(tmp_path: Path) -> None:
    playback = SpeechPlayback(path=tmp_path / "reply-1.mp3")

    await receive_audio(
        playback, _messages(json.dumps({"error": "ElevenLabs credentials missing"}))
    )

    assert playback.error == "ElevenLabs credentials missing"
    assert playback.frames == 0
    assert playback.ok is False


def test_playback_state_is_per_instance(tmp_path: Path) -> None:
    first = SpeechPlayback(path=tmp_path / "a.mp3")
    second = SpeechPlayback(path=tmp_path / "b.mp3")
    first.frames = 5

    assert second.frames == 0
