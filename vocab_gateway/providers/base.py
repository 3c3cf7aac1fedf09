"""Abstract base for AI text providers, plus the shared HTTP error policy."""

import asyncio
import random
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from vocab_gateway.config.settings import Settings
from vocab_gateway.errors import (
    EnrichmentError,
    InvalidPayload,
    NonRecoverableServiceError,
    RecoverableServiceError,
)
from vocab_gateway.logging.audit import get_audit_logger

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
# Retried on the same key before the error reaches the dispatcher
SAME_KEY_RETRY_STATUS = {429, 500, 503}
AUTH_STATUS = {401, 403}
# Markers in a 400 body that mean the key itself was rejected
INVALID_KEY_MARKERS = ("API_KEY_INVALID", "API key not valid", "invalid_api_key", "Incorrect API key")
RETRY_JITTER_SECONDS = 0.25

# google.rpc.RetryInfo in an error body: "retryDelay": "17s"
_RETRY_DELAY_BODY = re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"')


def _seconds_until(http_date: str) -> float | None:
    try:
        when = parsedate_to_datetime(http_date)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def parse_retry_after(headers, body_text: str = "") -> float | None:
    """Seconds the server asked us to wait, from Retry-After or a RetryInfo body."""
    value = headers.get("retry-after") if headers is not None else None
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        try:
            return max(0.0, float(raw))
        except ValueError:
            seconds = _seconds_until(raw)
        if seconds is not None:
            return seconds

    match = _RETRY_DELAY_BODY.search(body_text or "")
    return float(match.group(1)) if match else None


def classify_status(status_code: int, body_text: str, headers=None) -> EnrichmentError:
    """Map an upstream error status to the error that decides retry behaviour."""
    snippet = body_text[:300]
    if status_code in RETRYABLE_STATUS:
        return RecoverableServiceError(
            f"AI service returned {status_code}: {snippet}",
            retry_after=parse_retry_after(headers, body_text) if status_code == 429 else None,
        )
    if status_code in AUTH_STATUS or (
        status_code == 400 and any(m in body_text for m in INVALID_KEY_MARKERS)
    ):
        return NonRecoverableServiceError(f"AI service rejected the API key ({status_code})")
    if 400 <= status_code < 500:
        return InvalidPayload(f"AI service rejected the request ({status_code}): {snippet}")
    return NonRecoverableServiceError(f"AI service returned {status_code}: {snippet}")


def classify_transport_error(e: httpx.HTTPError) -> RecoverableServiceError:
    if isinstance(e, httpx.ConnectError):
        return RecoverableServiceError("Cannot reach AI service")
    if isinstance(e, httpx.TimeoutException):
        return RecoverableServiceError("AI service timed out")
    # str(e) of an httpx error can echo the URL, which may carry the key
    return RecoverableServiceError(f"AI service transport error: {type(e).__name__}")


def backoff_delay(retry: int, base_seconds: float) -> float:
    return base_seconds * (2 ** retry) + random.uniform(0, RETRY_JITTER_SECONDS)


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    json: dict,
    headers: dict,
    settings: Settings,
) -> httpx.Response:
    """POST and return the 200 response, retrying 429/500/503 on the same key.

    Waits with exponential backoff and jitter, or for the server's
    Retry-After when that is longer. A Retry-After above
    ai_retry_max_delay_seconds ends the retries so the dispatcher can move
    on to another key.
    """
    retry = 0
    while True:
        try:
            response = await client.post(url, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise classify_transport_error(e)

        if response.status_code == 200:
            return response

        error = classify_status(response.status_code, response.text, response.headers)
        if response.status_code not in SAME_KEY_RETRY_STATUS or retry >= settings.ai_max_retries:
            raise error

        delay = backoff_delay(retry, settings.ai_retry_base_delay_seconds)
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            if retry_after > settings.ai_retry_max_delay_seconds:
                raise error
            delay = max(delay, retry_after)

        get_audit_logger().warning(
            "Retrying AI service call on the same key",
            extra={"audit_data": {
                "status": response.status_code,
                "retry": retry + 1,
                "delay_s": round(delay, 2),
            }},
        )
        await asyncio.sleep(delay)
        retry += 1


class AIProvider(ABC):
    """Base class for AI text service implementations."""

    @property
    def cache_scope(self) -> str:
        """Identifies endpoint and model, so cached text is never shared across them."""
        return type(self).__name__

    @abstractmethod
    async def generate_text(self, prompt: str, api_key: str) -> str:
        """Send a single-turn prompt and return the generated text.

        Args:
            prompt: Complete prompt text.
            api_key: Secret of the credential chosen by the dispatcher.

        Raises:
            RecoverableServiceError: quota, rate limit, timeout, transport or
                malformed response. The dispatcher moves on to the next key.
            NonRecoverableServiceError: the key was rejected.
            InvalidPayload: the service refused the request itself.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass
