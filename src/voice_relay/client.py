#!/usr/bin/env python3
"""Voice Chat CLI - Terminal client for the voice relay backend.

Stands in for the browser client: typed text goes to /api/chat, and the
reply is streamed from /api/tts-stream into an audio file.
"""

import argparse
import asyncio
import json
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterable, Optional

import httpx
import websockets
from rich.console import Console
from rich.prompt import Prompt
from rich.style import Style

# Styles
REPLY_STYLE = Style(color="bright_green")
ECHO_STYLE = Style(color="yellow")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")


@dataclass
class SpeechPlayback:
    """Per-request audio state; one instance per spoken reply."""

    path: Path
    frames: int = 0
    bytes_received: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.frames > 0


def to_ws_url(server_url: str) -> str:
    """Map an http(s) base URL onto its ws(s) equivalent."""
    if server_url.startswith("https://"):
        return "wss://" + server_url[len("https://"):]
    if server_url.startswith("http://"):
        return "ws://" + server_url[len("http://"):]
    return server_url


async def receive_audio(
    playback: SpeechPlayback, messages: AsyncIterable[Any]
) -> SpeechPlayback:
    """Write binary frames to ``playback.path`` in arrival order.

    A text message is an error report from the server; the stream ends when
    the server closes the connection.
    """
    playback.path.parent.mkdir(parents=True, exist_ok=True)
    with playback.path.open("wb") as audio_file:
        async for message in messages:
            if isinstance(message, bytes):
                audio_file.write(message)
                playback.frames += 1
                playback.bytes_received += len(message)
                continue
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                payload = {"error": message}
            if isinstance(payload, dict):
                playback.error = str(payload.get("error", message))
            else:
                playback.error = str(payload)
    return playback


class VoiceChat:
    """Terminal chat client for the voice relay backend."""

    def __init__(self, server_url: str, output_dir: Path, speak: bool = True):
        self.server_url = server_url.rstrip("/")
        self.output_dir = output_dir
        self.speak = speak
        self.console = Console()
        self.running = True
        self._replies = 0

    async def _check_health(self) -> bool:
        """Check if backend is reachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.server_url}/health")
                if resp.status_code == 200:
                    data = resp.json()
                    self.console.print(
                        f"[dim]Connected to backend. Model: {data.get('model', 'unknown')}"
                        f" | TTS: {'on' if data.get('tts_configured') else 'off'}[/dim]"
                    )
                    return True
                self.console.print(
                    f"[error]Health check failed: {resp.status_code}[/error]",
                    style=ERROR_STYLE,
                )
        except httpx.HTTPError as e:
            self.console.print(
                f"[error]Cannot connect to backend: {e}[/error]", style=ERROR_STYLE
            )
        return False

    async def _chat(self, text: str) -> Optional[str]:
        """Send text to /api/chat and print the reply."""
        try:
            async with httpx.AsyncClient(timeout=None) as client:
                resp = await client.post(f"{self.server_url}/api/chat", json={"text": text})
        except httpx.HTTPError as e:
            self.console.print(f"[error]Chat API error: {e}[/error]", style=ERROR_STYLE)
            return None

        if resp.status_code != 200:
            self.console.print(
                f"[error]Error {resp.status_code}: {resp.text}[/error]", style=ERROR_STYLE
            )
            return None

        data = resp.json()
        reply = data.get("reply")
        if not reply:
            return None
        style = ECHO_STYLE if data.get("source") == "echo" else REPLY_STYLE
        self.console.print(reply, style=style)
        if data.get("error"):
            self.console.print(f"[dim]({data['error']})[/dim]")
        return reply

    async def _speak(self, reply: str) -> SpeechPlayback:
        """Stream the spoken reply into a new audio file."""
        self._replies += 1
        playback = SpeechPlayback(path=self.output_dir / f"reply-{self._replies}.mp3")
        url = f"{to_ws_url(self.server_url)}/api/tts-stream"
        try:
            async with websockets.connect(url, max_size=None) as connection:
                await connection.send(json.dumps({"text": reply}))
                await receive_audio(playback, connection)
        except (websockets.WebSocketException, OSError) as e:
            playback.error = str(e)

        if playback.ok:
            self.console.print(
                f"[dim]Saved {playback.bytes_received} bytes "
                f"({playback.frames} frames) to {playback.path}[/dim]"
            )
        else:
            self.console.print(
                f"[error]Speech failed: {playback.error or 'no audio received'}[/error]",
                style=ERROR_STYLE,
            )
        return playback

    def _print_help(self) -> None:
        self.console.print(
            "\n[bold]Commands:[/bold]\n"
            "  /help   Show this help\n"
            "  /quit   Exit\n"
            "Anything else is sent to the assistant.\n"
        )

    async def run(self) -> None:
        """Main chat loop."""
        if not await self._check_health():
            return

        self.console.print()
        self.console.print(
            "[bold]Voice Chat[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        while self.running:
            try:
                user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
                if not user_input:
                    continue

                if user_input in ("/quit", "/exit"):
                    break
                if user_input == "/help":
                    self._print_help()
                    continue

                reply = await self._chat(user_input)
                if reply and self.speak:
                    await self._speak(reply)
                self.console.print()

            except EOFError:
                # Ctrl+D
                self.console.print("\n[dim]Goodbye![/dim]")
                break
            except KeyboardInterrupt:
                # Ctrl+C - just cancel current input
                self.console.print()
                continue


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Voice Chat - Terminal client for the voice relay backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voice-chat                             Connect to localhost:4000
  voice-chat --server http://pi:4000     Connect to remote server
  voice-chat --no-audio                  Text replies only

Environment Variables:
  VOICE_RELAY_SERVER    Default server URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("VOICE_RELAY_SERVER", "http://localhost:4000"),
        help="Backend server URL (default: http://localhost:4000)",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=Path("replies"),
        help="Directory for spoken replies (default: ./replies)",
    )
    parser.add_argument(
        "--no-audio",
        action="store_true",
        help="Skip speech synthesis",
    )

    args = parser.parse_args()

    def signal_handler(sig, frame):
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    chat = VoiceChat(server_url=args.server, output_dir=args.output_dir, speak=not args.no_audio)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
