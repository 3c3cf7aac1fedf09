"""Credential model and pool snapshot."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from vocab_gateway.errors import InvalidCredential

DEFAULT_NAME = "API Key"
MIN_SECRET_LENGTH = 12  # Masks show 8 characters, so the secret never appears whole


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_credential_id() -> str:
    return uuid.uuid4().hex


def mask_secret(secret: str) -> str:
    s = secret.strip()
    if not s:
        return ""
    return f"{s[:4]}…{s[-4:]}"


def validate_secret(secret) -> str:
    """Return the stripped secret or raise InvalidCredential."""
    s = str(secret or "").strip()
    if not s:
        raise InvalidCredential("API key is required")
    if any(c.isspace() for c in s):
        raise InvalidCredential("API key must not contain whitespace")
    if len(s) < MIN_SECRET_LENGTH:
        raise InvalidCredential(f"API key must be at least {MIN_SECRET_LENGTH} characters")
    return s


@dataclass
class Credential:
    id: str
    name: str
    secret: str = field(repr=False)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    def to_public(self) -> dict:
        return {"id": self.id, "name": self.name, "masked": self.masked}

    def to_record(self) -> dict:
        """Persisted form. Only stores ever see this."""
        return {
            "id": self.id,
            "name": self.name,
            "key": self.secret,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class PoolSnapshot:
    """The persisted state of a credential pool."""

    credentials: list[Credential] = field(default_factory=list)
    active_id: str | None = None
    concurrency: int | None = None  # None = use the configured default
    version: int = 1

    def to_document(self) -> dict:
        return {
            "version": self.version,
            "activeId": self.active_id,
            "concurrency": self.concurrency,
            "items": [c.to_record() for c in self.credentials],
        }

    @classmethod
    def from_document(cls, data) -> "PoolSnapshot":
        """Build a snapshot from a stored document, repairing what it can.

        Entries without a key are dropped, missing ids are generated, blank
        names get the default, and a dangling activeId is cleared.
        """
        doc = data if isinstance(data, dict) else {}
        now = utc_now()
        credentials = []
        for item in doc.get("items") or []:
            if not isinstance(item, dict):
                continue
            secret = item.get("key")
            secret = secret.strip() if isinstance(secret, str) else ""
            if not secret:
                continue
            cid = item.get("id")
            name = item.get("name")
            credentials.append(Credential(
                id=cid.strip() if isinstance(cid, str) and cid.strip() else new_credential_id(),
                name=name.strip() if isinstance(name, str) and name.strip() else DEFAULT_NAME,
                secret=secret,
                created_at=item.get("createdAt") if isinstance(item.get("createdAt"), str) else now,
                updated_at=item.get("updatedAt") if isinstance(item.get("updatedAt"), str) else now,
            ))

        active_id = doc.get("activeId")
        if not isinstance(active_id, str) or not any(c.id == active_id for c in credentials):
            active_id = None

        concurrency = doc.get("concurrency")
        if isinstance(concurrency, bool) or not isinstance(concurrency, int):
            concurrency = None

        return cls(credentials=credentials, active_id=active_id, concurrency=concurrency)
