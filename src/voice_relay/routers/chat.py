"""Chat API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..config import Settings, get_settings
from ..gemini import GeminiClient
from ..schemas.chat import ChatRequest, ChatResponse
from ..services.chat_service import ChatService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["chat"])


def get_chat_service(settings: Settings = Depends(get_settings)) -> ChatService:
    client = GeminiClient(settings) if settings.gemini_configured else None
    return ChatService(client)


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    payload: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Forward the user's text to Gemini; echo it back if Gemini is unavailable."""

    text = payload.text or ""
    logger.info("Incoming /api/chat request: %s", text[:200])
    if not text.strip():
        raise HTTPException(status_code=400, detail="No text provided")

    return await service.reply(text)


__all__ = ["get_chat_service", "router"]
