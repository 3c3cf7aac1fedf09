"""Provider registry — one shared AI text provider per backend name.

Every credential in the pool talks to the same backend, selected by
AI_PROVIDER ("google" for Google AI Studio, "openai" for any
OpenAI-compatible endpoint). The instance is shared so its HTTP
connection pool is reused across keys and requests.
"""

from vocab_gateway.config.settings import get_settings
from vocab_gateway.providers.base import AIProvider
from vocab_gateway.providers.google import GoogleAIStudioProvider

PROVIDER_NAMES = ("google", "openai")

_providers: dict[str, AIProvider] = {}


def get_provider(name: str | None = None) -> AIProvider:
    """Get or create the provider for `name`, defaulting to the configured backend."""
    key = (name or get_settings().ai_provider).strip().lower()
    if key in _providers:
        return _providers[key]

    if key == "google":
        _providers[key] = GoogleAIStudioProvider()
    elif key == "openai":
        from vocab_gateway.providers.openai import OpenAIProvider
        _providers[key] = OpenAIProvider()
    else:
        raise ValueError(f"Unknown provider: {key} (expected one of {', '.join(PROVIDER_NAMES)})")

    return _providers[key]


async def close_all_providers() -> None:
    """Close every provider's HTTP client at shutdown."""
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
