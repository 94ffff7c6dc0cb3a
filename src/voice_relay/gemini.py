"""Gemini generative-language client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional, Sequence

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)


class GeminiError(Exception):
    """Wrap transport or API failures when communicating with Gemini."""

    def __init__(self, status_code: Optional[int], detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class GeminiClient:
    """Client responsible for single-turn text generation against Gemini."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._http_client = http_client

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.gemini_api_key
        return {
            "x-goog-api-key": api_key.get_secret_value() if api_key else "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @property
    def _base_url(self) -> str:
        """Return the Gemini API base URL without a trailing slash."""

        return str(self._settings.gemini_base_url).rstrip("/")

    @property
    def model(self) -> str:
        return self._settings.gemini_model

    def build_payload(self, text: str) -> dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": text}]}]}

    async def generate_reply(self, text: str) -> str:
        """Send ``text`` as a single user turn and return the model's reply."""

        client = await self._get_http_client()
        url = f"{self._base_url}/models/{self.model}:generateContent"
        logger.debug("Requesting Gemini completion from %s", url)
        try:
            response = await client.post(
                url,
                headers=self._headers,
                json=self.build_payload(text),
            )
        except httpx.HTTPError as exc:
            raise GeminiError(None, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            raise GeminiError(response.status_code, detail)

        try:
            body = response.json()
        except ValueError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        return self._extract_reply_text(body)

    @staticmethod
    def _extract_reply_text(payload: Any) -> str:
        if not isinstance(payload, Mapping):
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "Gemini response is not an object")
        candidates = payload.get("candidates")
        if not isinstance(candidates, Sequence) or not candidates:
            feedback = payload.get("promptFeedback")
            reason = feedback.get("blockReason") if isinstance(feedback, Mapping) else None
            detail = (
                f"Gemini blocked the prompt ({reason})"
                if reason
                else "Gemini response missing candidates"
            )
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, detail)
        candidate = candidates[0]
        content = candidate.get("content") if isinstance(candidate, Mapping) else None
        parts = content.get("parts") if isinstance(content, Mapping) else None
        fragments: list[str] = []
        if isinstance(parts, Sequence):
            for part in parts:
                if isinstance(part, Mapping) and isinstance(part.get("text"), str):
                    fragments.append(part["text"])
        text = "".join(fragments).strip()
        if not text:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "Gemini response missing content")
        return text

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
            return error or payload
        return payload

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                logger.warning("Failed to close Gemini HTTP client: %s", exc)


__all__ = ["GeminiClient", "GeminiError"]
