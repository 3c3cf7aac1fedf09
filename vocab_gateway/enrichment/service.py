"""Enrichment service — the boundary API used by the UI and background jobs.

Validates caller payloads, turns them into dispatcher calls and shapes the
results. Errors leave this layer as vocab_gateway.errors classes only, and
no response ever carries secret material.
"""

from collections.abc import Callable
from typing import TypeVar

from vocab_gateway.config.settings import Settings, get_settings
from vocab_gateway.credentials.pool import CredentialPool
from vocab_gateway.dispatch.dispatcher import Dispatcher, Operation
from vocab_gateway.dispatch.gate import RateGate
from vocab_gateway.dispatch.registry import RequestRegistry
from vocab_gateway.enrichment import prompts
from vocab_gateway.enrichment.models import EnrichmentResult
from vocab_gateway.enrichment.parsing import clean_sentence, parse_meaning, sanitize_ipa
from vocab_gateway.errors import InvalidPayload, RecoverableServiceError
from vocab_gateway.logging.audit import get_audit_logger
from vocab_gateway.providers.base import AIProvider
from vocab_gateway.providers.cache import ResponseCache

DEFAULT_SOURCE_LANG = "en"
DEFAULT_TARGET_LANG = "vi"

T = TypeVar("T")


def _require_payload(payload) -> dict:
    if not isinstance(payload, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return payload


def _text(payload: dict, *names: str) -> str:
    """First non-blank string among `names`, stripped."""
    for name in names:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _required(payload: dict, name: str) -> str:
    value = _text(payload, name)
    if not value:
        raise InvalidPayload(f"'{name}' is required")
    return value


def _required_id(value, label: str = "Key id") -> str:
    s = str(value or "").strip()
    if not s:
        raise InvalidPayload(f"{label} is required")
    return s


class EnrichmentService:

    def __init__(
        self,
        pool: CredentialPool,
        provider: AIProvider,
        settings: Settings | None = None,
        registry: RequestRegistry | None = None,
        cache: ResponseCache | None = None,
    ):
        self._settings = settings or get_settings()
        self._pool = pool
        self._provider = provider
        self._gate = RateGate(pool.concurrency)
        self._registry = registry if registry is not None else RequestRegistry()
        self._cache = cache if cache is not None else ResponseCache(
            self._settings.response_cache_ttl_seconds,
            self._settings.response_cache_max_entries,
        )
        self._dispatcher = Dispatcher(pool, self._gate, self._registry, self._settings)

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    @property
    def gate(self) -> RateGate:
        return self._gate

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def load(self) -> None:
        """Load persisted pool state and size the gate from it."""
        await self._pool.load()
        self._gate.resize(self._pool.concurrency)

    async def close(self) -> None:
        await self._provider.close()

    async def _generate(self, prompt: str, api_key: str, accept: Callable[[str], T]) -> T:
        """Generate text for `prompt` and shape it with `accept`.

        A reply is cached only once `accept` returned, so a reply that
        raised MalformedResponse is never replayed for another key.
        """
        cache_key = self._cache.make_key(self._provider.cache_scope, prompt)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return accept(cached)

        raw = await self._provider.generate_text(prompt, api_key)
        result = accept(raw)
        self._cache.set(cache_key, raw)
        return result

    # --- credential management ---

    def get_credential_status(self) -> dict:
        return self._pool.status()

    def get_credential_health(self) -> dict:
        return self._pool.list_health()

    async def reset_credential_errors(self, credential_id) -> bool:
        cid = _required_id(credential_id)
        self._pool.reset_errors(cid)
        get_audit_logger().info("API key errors reset", extra={"audit_data": {"credential_id": cid}})
        return True

    def get_concurrency(self) -> dict:
        return {"concurrency": self._pool.concurrency}

    async def set_concurrency(self, value) -> dict:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidPayload("concurrency must be an integer >= 1")
        applied = await self._pool.set_concurrency(value)
        self._gate.resize(applied)
        get_audit_logger().info("Concurrency changed", extra={"audit_data": {"concurrency": applied}})
        return {"concurrency": applied}

    def list_credentials(self) -> dict:
        return self._pool.list_masked()

    async def add_credential(self, payload) -> bool:
        req = _require_payload(payload)
        secret = req.get("secretMaterial", req.get("apiKey"))
        credential_id = await self._pool.add(req.get("name"), secret)
        get_audit_logger().info("API key added", extra={"audit_data": {"credential_id": credential_id}})
        return True

    async def delete_credential(self, credential_id) -> bool:
        cid = _required_id(credential_id)
        await self._pool.delete(cid)
        get_audit_logger().info("API key deleted", extra={"audit_data": {"credential_id": cid}})
        return True

    async def set_active_credential(self, credential_id) -> bool:
        await self._pool.set_active(_required_id(credential_id))
        return True

    async def clear_active_credential(self) -> bool:
        await self._pool.clear_active()
        get_audit_logger().info("Active API key cleared")
        return True

    async def rename_credential(self, credential_id, name) -> bool:
        await self._pool.rename(_required_id(credential_id), name)
        return True

    # --- enrichment ---

    async def request_auto_meaning(self, payload) -> dict:
        """Suggest ranked meanings for a word, plus a translation of its context sentence.

        Pooled: each credential is tried in order until one succeeds.
        """
        req = _require_payload(payload)
        request_id = _required(req, "requestId")
        word = _required(req, "word")
        context = _text(req, "contextSentenceSource", "contextSentenceEn")
        source = _text(req, "from") or DEFAULT_SOURCE_LANG
        target = _text(req, "to") or DEFAULT_TARGET_LANG

        meaning_prompt = prompts.meaning_prompt(word, context, source, target)
        context_prompt = prompts.translation_prompt(context, source, target) if context else ""

        async def call(api_key: str) -> EnrichmentResult:
            candidates, suggested = await self._generate(meaning_prompt, api_key, parse_meaning)
            context_vi = ""
            if context_prompt:
                try:
                    context_vi = await self._generate(context_prompt, api_key, str.strip)
                except RecoverableServiceError as e:
                    # The meanings are still useful without the translated sentence
                    get_audit_logger().warning(
                        "Context sentence translation failed",
                        extra={"audit_data": {"error": e.code, "detail": e.message}},
                    )
            return EnrichmentResult(
                request_id=request_id,
                word=word,
                context_sentence_vi=context_vi,
                candidates=candidates,
                fallback_meaning=suggested,
            )

        result = await self._dispatcher.dispatch(Operation.AUTO_MEANING, call, request_id=request_id)
        return result.to_dict()

    def cancel_auto_meaning(self, request_id) -> bool:
        rid = str(request_id or "").strip()
        if not rid:
            return False
        return self._dispatcher.cancel(rid)

    async def request_example_sentence(self, payload) -> str:
        req = _require_payload(payload)
        word = _required(req, "word")
        prompt = prompts.example_sentence_prompt(
            word,
            _text(req, "meaningTarget", "meaningVi"),
            _text(req, "pos"),
            _text(req, "contextSentenceSource", "contextSentenceEn"),
        )

        async def call(api_key: str) -> str:
            return await self._generate(prompt, api_key, clean_sentence)

        return await self._dispatcher.dispatch(Operation.EXAMPLE_SENTENCE, call)

    async def request_ipa(self, payload) -> str:
        req = _require_payload(payload)
        word = _required(req, "word")
        dialect = (_text(req, "dialect") or "US").upper()
        if dialect not in prompts.DIALECTS:
            raise InvalidPayload(f"dialect must be one of {sorted(prompts.DIALECTS)}")
        prompt = prompts.ipa_prompt(word, dialect)

        async def call(api_key: str) -> str:
            return await self._generate(prompt, api_key, sanitize_ipa)

        return await self._dispatcher.dispatch(Operation.IPA, call)

    async def request_plain_translation(self, payload) -> str:
        req = _require_payload(payload)
        text = _text(req, "text")
        if not text:
            return ""
        prompt = prompts.translation_prompt(
            text,
            _text(req, "from") or DEFAULT_SOURCE_LANG,
            _text(req, "to") or DEFAULT_TARGET_LANG,
        )

        async def call(api_key: str) -> str:
            return await self._generate(prompt, api_key, str.strip)

        return await self._dispatcher.dispatch(Operation.TRANSLATION, call)
