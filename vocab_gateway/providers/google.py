"""Google AI Studio provider (Gemini / Gemma generateContent API)."""

import json
from urllib.parse import quote

import httpx

from vocab_gateway.config.settings import get_settings
from vocab_gateway.errors import MalformedResponse
from vocab_gateway.providers.base import AIProvider, post_with_retry


class GoogleAIStudioProvider(AIProvider):
    """Calls models/{model}:generateContent with the key in x-goog-api-key."""

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        return self._client

    @property
    def cache_scope(self) -> str:
        settings = get_settings()
        return f"{settings.ai_endpoint.rstrip('/')}|{settings.ai_model}"

    @staticmethod
    def _build_body(prompt: str, temperature: float) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "topP": 0.95},
        }

    @staticmethod
    def _extract_text(data) -> str:
        """Pull candidates[0].content.parts[0].text out of a response body."""
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponse("AI service response has no candidates")
        if not isinstance(parts, list) or not parts:
            return ""
        return str(parts[0].get("text") or "") if isinstance(parts[0], dict) else ""

    async def generate_text(self, prompt: str, api_key: str) -> str:
        settings = get_settings()
        base = settings.ai_endpoint.rstrip("/")
        url = f"{base}/models/{quote(settings.ai_model, safe='')}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}

        client = await self._get_client()
        response = await post_with_retry(
            client,
            url,
            json=self._build_body(prompt, settings.ai_temperature),
            headers=headers,
            settings=settings,
        )

        try:
            data = response.json()
        except json.JSONDecodeError:
            raise MalformedResponse("AI service returned a non-JSON body")
        return self._extract_text(data)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
