"""Credential pool: the configured API keys plus the active one.

The pool is a plain object built around a CredentialStore. Call `load()`
once at startup; every mutation persists the full snapshot afterwards.
Mutations run on the event loop, so no locking is needed around the
in-memory state. Saves are serialized so the latest state always wins.

Per-key health (error streaks, cooldowns, latency) lives next to the keys
in a HealthTracker and is not persisted.
"""

import asyncio

from vocab_gateway.config.settings import Settings, get_settings
from vocab_gateway.credentials.health import HealthTracker
from vocab_gateway.credentials.models import (
    DEFAULT_NAME,
    Credential,
    PoolSnapshot,
    new_credential_id,
    utc_now,
    validate_secret,
)
from vocab_gateway.credentials.store import CredentialStore
from vocab_gateway.errors import InvalidCredential, NotFound
from vocab_gateway.logging.audit import get_audit_logger


class CredentialPool:

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings | None = None,
        health: HealthTracker | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._health = health if health is not None else HealthTracker()
        self._credentials: list[Credential] = []
        self._active_id: str | None = None
        self._concurrency: int = self._settings.coerce_concurrency(self._settings.default_concurrency)
        self._persist_lock = asyncio.Lock()

    # --- lifecycle ---

    async def load(self) -> None:
        """Load persisted state, seeding from settings.ai_api_key on first run."""
        snapshot = await self._store.load()
        if snapshot is not None:
            self._credentials = list(snapshot.credentials)
            self._active_id = snapshot.active_id
            if snapshot.concurrency is not None:
                self._concurrency = self._settings.coerce_concurrency(snapshot.concurrency)
            return

        seed = self._settings.ai_api_key
        if not seed.strip():
            return  # no document is written until the first key is added
        try:
            await self.add("Default", seed)
        except InvalidCredential as e:
            get_audit_logger().warning(
                "Ignoring invalid seed API key",
                extra={"audit_data": {"reason": e.message}},
            )

    def snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(
            credentials=list(self._credentials),
            active_id=self._active_id,
            concurrency=self._concurrency,
        )

    async def _persist(self) -> None:
        async with self._persist_lock:
            await self._store.save(self.snapshot())

    # --- queries ---

    def __len__(self) -> int:
        return len(self._credentials)

    def __contains__(self, credential_id: str) -> bool:
        return any(c.id == credential_id for c in self._credentials)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def health(self) -> HealthTracker:
        return self._health

    def get(self, credential_id: str) -> Credential:
        for credential in self._credentials:
            if credential.id == credential_id:
                return credential
        raise NotFound(f"API key not found: {credential_id}")

    def active(self) -> Credential | None:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def candidates(self, pooled: bool) -> list[Credential]:
        """Credentials to try, in order.

        Pooled operations fall back across every key that is not cooling
        down. Single-key operations always get the active key.
        """
        if pooled:
            return [c for c in self._credentials if not self._health.in_cooldown(c.id)]
        active = self.active()
        return [active] if active is not None else []

    def next_available_in(self) -> float:
        """Seconds until the first cooling-down key is usable again."""
        remaining = [self._health.cooldown_remaining(c.id) for c in self._credentials]
        return min(remaining, default=0.0)

    def list_masked(self) -> dict:
        return {
            "activeId": self._active_id,
            "items": [c.to_public() for c in self._credentials],
        }

    def list_health(self) -> dict:
        return {
            "items": [
                {"id": c.id, "name": c.name, **self._health.to_public(c.id)}
                for c in self._credentials
            ],
        }

    def status(self) -> dict:
        return {"hasKey": bool(self._credentials)}

    # --- health ---

    def record_success(self, credential_id: str, latency_ms: float) -> None:
        if credential_id in self:
            self._health.record_success(credential_id, latency_ms)

    def record_failure(self, credential_id: str, error: str, retry_after: float | None = None) -> float:
        if credential_id not in self:
            return 0.0
        return self._health.record_failure(credential_id, error, retry_after)

    def reset_errors(self, credential_id: str) -> None:
        self._health.reset(self.get(credential_id).id)

    # --- mutations ---

    async def add(self, name, secret) -> str:
        secret = validate_secret(secret)
        label = str(name or "").strip() or DEFAULT_NAME
        credential = Credential(id=new_credential_id(), name=label, secret=secret)
        self._credentials.append(credential)
        if self._active_id is None:
            self._active_id = credential.id
        await self._persist()
        return credential.id

    async def delete(self, credential_id: str) -> None:
        credential = self.get(credential_id)
        index = self._credentials.index(credential)
        del self._credentials[index]
        self._health.forget(credential_id)

        if self._active_id == credential_id:
            if not self._credentials:
                self._active_id = None
            elif index > 0:
                self._active_id = self._credentials[index - 1].id
            else:
                self._active_id = self._credentials[0].id
        await self._persist()

    async def set_active(self, credential_id: str) -> None:
        self._active_id = self.get(credential_id).id
        await self._persist()

    async def clear_active(self) -> None:
        """Keep the keys but select none. Single-key operations then fail with NoCredential."""
        self._active_id = None
        await self._persist()

    async def rename(self, credential_id: str, name) -> None:
        credential = self.get(credential_id)
        credential.name = str(name or "").strip() or DEFAULT_NAME
        credential.updated_at = utc_now()
        await self._persist()

    async def set_concurrency(self, value: int) -> int:
        """Store a new slot count (clamped to max_concurrency) and return it."""
        self._concurrency = self._settings.coerce_concurrency(value)
        await self._persist()
        return self._concurrency
