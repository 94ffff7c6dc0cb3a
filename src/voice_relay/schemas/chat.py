"""Pydantic models for chat requests and responses."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class ChatRequest(BaseModel):
    """Incoming chat payload carrying the transcribed user speech."""

    text: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ChatResponse(BaseModel):
    """Reply returned to the client.

    ``error`` is only populated when the LLM provider could not answer and the
    reply is the echo fallback.
    """

    reply: str
    source: Literal["gemini", "echo"]
    error: Optional[str] = None


__all__ = ["ChatRequest", "ChatResponse"]
