"""Forward user text to the LLM provider, degrading to an echo reply."""

from __future__ import annotations

import logging
from typing import Optional

from ..gemini import GeminiClient, GeminiError
from ..schemas.chat import ChatResponse

logger = logging.getLogger(__name__)

FALLBACK_TEMPLATE = (
    "Sorry, the AI service is unavailable (code:{code}). "
    'Here\'s an echo: "{text}"'
)


def build_fallback_reply(text: str, status_code: Optional[int] = None) -> str:
    code = status_code if status_code is not None else "unknown"
    return FALLBACK_TEMPLATE.format(code=code, text=text)


class ChatService:
    """Single-attempt chat forwarding.

    Any failure from the provider (missing key, transport error, non-success
    status, empty reply) produces a fixed echo reply instead of an error
    response, so the client can always display something.
    """

    def __init__(self, client: Optional[GeminiClient]):
        self._client = client

    async def reply(self, text: str) -> ChatResponse:
        if self._client is None:
            logger.warning("Gemini API key not configured; echoing input")
            return self._fallback(text, None, "Gemini API key not configured")

        try:
            reply = await self._client.generate_reply(text)
        except GeminiError as exc:
            logger.error(
                "Gemini request failed (status=%s): %s", exc.status_code, exc.detail
            )
            return self._fallback(text, exc.status_code, str(exc.detail))

        logger.info("Gemini reply received (%d chars)", len(reply))
        return ChatResponse(reply=reply, source="gemini")

    @staticmethod
    def _fallback(text: str, status_code: Optional[int], error: str) -> ChatResponse:
        return ChatResponse(
            reply=build_fallback_reply(text, status_code),
            source="echo",
            error=error or "unknown",
        )


__all__ = ["ChatService", "FALLBACK_TEMPLATE", "build_fallback_reply"]
