"""OpenAI-compatible chat completions provider."""

import json

import httpx

from vocab_gateway.config.settings import get_settings
from vocab_gateway.errors import MalformedResponse
from vocab_gateway.providers.base import AIProvider, post_with_retry


class OpenAIProvider(AIProvider):
    """Sends a single user message to /v1/chat/completions."""

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        return self._client

    @property
    def cache_scope(self) -> str:
        settings = get_settings()
        return f"{settings.openai_base_url.rstrip('/')}|{settings.openai_model}"

    def _build_headers(self, api_key: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    async def generate_text(self, prompt: str, api_key: str) -> str:
        settings = get_settings()
        upstream_url = f"{settings.openai_base_url.rstrip('/')}/v1/chat/completions"
        body = {
            "model": settings.openai_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": settings.ai_temperature,
        }

        client = await self._get_client()
        response = await post_with_retry(
            client, upstream_url, json=body, headers=self._build_headers(api_key), settings=settings
        )

        try:
            data = response.json()
            return data["choices"][0]["message"].get("content") or ""
        except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError):
            raise MalformedResponse("AI service returned an unexpected chat completion body")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
