"""Dispatcher — runs one logical operation against the credential pool.

Pipeline per request: Register -> Pick candidates -> (Acquire slot -> Call -> Release)* -> Unregister

Auto-meaning is pooled: every credential that is not cooling down is a
candidate, in pool order, and recoverable failures fall through to the
next one. The other operations only use the active credential. A
credential deleted while the request is running is skipped; only calls
already holding its slot finish on it. Each outcome feeds the pool's
per-key health.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from vocab_gateway.config.settings import Settings, get_settings
from vocab_gateway.credentials.models import Credential
from vocab_gateway.credentials.pool import CredentialPool
from vocab_gateway.dispatch.gate import RateGate
from vocab_gateway.dispatch.registry import CancellationToken, RequestRegistry
from vocab_gateway.errors import (
    AllCredentialsExhausted,
    Cancelled,
    EnrichmentError,
    NoCredential,
    NonRecoverableServiceError,
    RecoverableServiceError,
)
from vocab_gateway.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
)

T = TypeVar("T")

# Returned by _attempt when the credential left the pool while waiting for a slot
_REMOVED = object()


class Operation(str, Enum):
    AUTO_MEANING = "auto_meaning"
    EXAMPLE_SENTENCE = "example_sentence"
    IPA = "ipa"
    TRANSLATION = "translation"

    @property
    def pooled(self) -> bool:
        return self is Operation.AUTO_MEANING


class Dispatcher:

    def __init__(
        self,
        pool: CredentialPool,
        gate: RateGate,
        registry: RequestRegistry,
        settings: Settings | None = None,
    ):
        self._pool = pool
        self._gate = gate
        self._registry = registry
        self._settings = settings or get_settings()

    @property
    def registry(self) -> RequestRegistry:
        return self._registry

    def cancel(self, request_id: str) -> bool:
        return self._registry.cancel(request_id)

    async def dispatch(
        self,
        op: Operation,
        call: Callable[[str], Awaitable[T]],
        request_id: str | None = None,
    ) -> T:
        """Run `call(secret)` on the first credential that succeeds.

        `call` receives the raw secret and must raise the service errors from
        vocab_gateway.errors. Anonymous requests get a generated id.
        """
        rid = request_id or generate_request_id()
        token = self._registry.begin(rid)
        ctx = request_id_var.set(rid)
        try:
            return await self._run(op, call, token)
        finally:
            self._registry.end(rid)
            request_id_var.reset(ctx)

    def _no_candidates(self, op: Operation) -> EnrichmentError:
        if len(self._pool) == 0:
            return NoCredential("No API key configured")
        if not op.pooled:
            return NoCredential("No active API key")
        wait = self._pool.next_available_in()
        return AllCredentialsExhausted(RecoverableServiceError(
            f"All API keys are cooling down, next one in {wait:.0f}s",
            retry_after=wait,
        ))

    async def _run(self, op: Operation, call, token: CancellationToken):
        logger = get_audit_logger()
        candidates = self._pool.candidates(op.pooled)
        if not candidates:
            logger.warning(
                "No credential available",
                extra={"audit_data": {"operation": op.value, "pool_size": len(self._pool)}},
            )
            raise self._no_candidates(op)

        last_error: RecoverableServiceError | None = None
        tried = 0

        for attempt, credential in enumerate(candidates, start=1):
            audit = {
                "operation": op.value,
                "credential_id": credential.id,
                "attempt": attempt,
                "candidates": len(candidates),
            }
            # Deleted while an earlier candidate was running
            if credential.id not in self._pool:
                logger.info("Skipping removed credential", extra={"audit_data": audit})
                continue

            with RequestTimer() as timer:
                try:
                    result = await self._attempt(credential, call, token)
                except Cancelled:
                    logger.info("Request cancelled", extra={"audit_data": audit})
                    raise
                except RecoverableServiceError as e:
                    tried += 1
                    if token.cancelled:
                        logger.info("Request cancelled", extra={"audit_data": audit})
                        raise Cancelled("Request cancelled") from e
                    last_error = e
                    cooldown = self._pool.record_failure(credential.id, e.message, e.retry_after)
                    logger.warning(
                        "Recoverable failure, trying next credential",
                        extra={"audit_data": {
                            **audit, "error": e.code, "detail": e.message, "cooldown_s": cooldown,
                        }},
                    )
                    continue
                except EnrichmentError as e:
                    if token.cancelled:
                        raise Cancelled("Request cancelled") from e
                    if isinstance(e, NonRecoverableServiceError):
                        self._pool.record_failure(credential.id, e.message)
                    logger.error(
                        "Request failed",
                        extra={"audit_data": {**audit, "error": e.code, "detail": e.message}},
                    )
                    raise
                except Exception as e:
                    if token.cancelled:
                        raise Cancelled("Request cancelled") from e
                    logger.exception("Unexpected failure", extra={"audit_data": audit})
                    raise NonRecoverableServiceError(f"Unexpected error: {type(e).__name__}") from e

            if result is _REMOVED:
                logger.info("Skipping removed credential", extra={"audit_data": audit})
                continue

            tried += 1
            self._pool.record_success(credential.id, timer.elapsed_ms)
            logger.info(
                "Request completed",
                extra={"audit_data": {**audit, "latency_ms": timer.elapsed_ms}},
            )
            return result

        if tried == 0:
            logger.warning(
                "Every candidate was removed before its turn",
                extra={"audit_data": {"operation": op.value, "candidates": len(candidates)}},
            )
            raise NoCredential("API key was removed before the request could use it")

        logger.error(
            "All credentials exhausted",
            extra={"audit_data": {
                "operation": op.value,
                "candidates": len(candidates),
                "last_error": last_error.message if last_error else None,
            }},
        )
        raise AllCredentialsExhausted(last_error)

    async def _attempt(self, credential: Credential, call, token: CancellationToken):
        timeout = self._settings.request_timeout_seconds
        async with self._gate.slot(credential.id, token):
            if credential.id not in self._pool:
                return _REMOVED
            try:
                result = await asyncio.wait_for(call(credential.secret), timeout=timeout)
            except asyncio.TimeoutError:
                raise RecoverableServiceError(f"AI service timed out after {timeout:g}s")
        # A result that arrives after cancellation is discarded
        token.raise_if_cancelled()
        return result
