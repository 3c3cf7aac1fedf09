"""Shared fixtures for the enrichment gateway test suite."""

import asyncio
import json

import pytest

from vocab_gateway.config.settings import Settings, get_settings
from vocab_gateway.credentials.pool import CredentialPool
from vocab_gateway.credentials.store import MemoryCredentialStore
from vocab_gateway.enrichment.service import EnrichmentService
from vocab_gateway.providers.base import AIProvider

KEY_A = "AIzaSyA-test-key-aaaa-0001"
KEY_B = "AIzaSyB-test-key-bbbb-0002"
KEY_C = "AIzaSyC-test-key-cccc-0003"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment's .env and seed key."""
    values = {"ai_api_key": "", "response_cache_ttl_seconds": 0}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeProvider(AIProvider):
    """Scripted provider. Outcomes are looked up by api_key.

    An outcome is a string (returned), an exception instance (raised), an
    async callable `(prompt, api_key) -> str`, or a list of those consumed
    one call at a time.
    """

    def __init__(self, responses: dict | None = None, default="ok"):
        self.responses = responses or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    @property
    def keys_called(self) -> list[str]:
        return [api_key for _, api_key in self.calls]

    async def generate_text(self, prompt: str, api_key: str) -> str:
        self.calls.append((prompt, api_key))
        outcome = self.responses.get(api_key, self.default)
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(prompt, api_key)
        return outcome

    async def close(self) -> None:
        self.closed = True


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and woken tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def meaning_json(suggested: str, *glosses: str, pos: str = "Noun") -> str:
    return json.dumps({
        "meaningSuggested": suggested,
        "candidates": [{"vi": g, "pos": pos, "back": ["hint"]} for g in glosses],
    }, ensure_ascii=False)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
async def pool(memory_store, settings) -> CredentialPool:
    p = CredentialPool(memory_store, settings)
    await p.load()
    return p


@pytest.fixture
async def pool_abc(pool) -> CredentialPool:
    """Pool holding KEY_A, KEY_B, KEY_C in that order; A is active."""
    await pool.add("A", KEY_A)
    await pool.add("B", KEY_B)
    await pool.add("C", KEY_C)
    return pool


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def service(pool, fake_provider, settings) -> EnrichmentService:
    svc = EnrichmentService(pool, fake_provider, settings)
    await svc.load()
    return svc


@pytest.fixture
def pool_document() -> dict:
    """A stored pool document as written by JSONCredentialStore."""
    return {
        "version": 1,
        "activeId": "key-2",
        "concurrency": 6,
        "items": [
            {"id": "key-1", "name": "Personal", "key": KEY_A,
             "createdAt": "2026-01-01T00:00:00+00:00", "updatedAt": "2026-01-01T00:00:00+00:00"},
            {"id": "key-2", "name": "Work", "key": KEY_B,
             "createdAt": "2026-01-02T00:00:00+00:00", "updatedAt": "2026-01-02T00:00:00+00:00"},
        ],
    }


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(AI_MODEL="gemini-2.0-flash", REQUEST_TIMEOUT_SECONDS="5")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()
