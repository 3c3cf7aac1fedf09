"""Credential store abstraction + JSON file implementation."""

import asyncio
import json
import os
from abc import ABC, abstractmethod

from vocab_gateway.credentials.models import PoolSnapshot
from vocab_gateway.logging.audit import get_audit_logger


class CredentialStore(ABC):
    """Abstract base for persisting the credential pool."""

    @abstractmethod
    async def load(self) -> PoolSnapshot | None:
        """Return the stored snapshot, or None if nothing was ever saved."""
        ...

    @abstractmethod
    async def save(self, snapshot: PoolSnapshot) -> None:
        ...


class JSONCredentialStore(CredentialStore):
    """File-backed store. Writes go to a temp file and are swapped in."""

    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    async def load(self) -> PoolSnapshot | None:
        return await asyncio.to_thread(self._read)

    async def save(self, snapshot: PoolSnapshot) -> None:
        await asyncio.to_thread(self._write, snapshot.to_document())

    def _read(self) -> PoolSnapshot | None:
        if not os.path.isfile(self._path):
            return None
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            # Start empty; the next save replaces the unreadable file
            get_audit_logger().warning(
                "Credential store file is unreadable, starting with an empty pool",
                extra={"audit_data": {"path": self._path, "error": type(e).__name__}},
            )
            return None
        return PoolSnapshot.from_document(data)

    def _write(self, document: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self._path)


class MemoryCredentialStore(CredentialStore):
    """Keeps the last saved document in memory. Used when persistence is off."""

    def __init__(self, document: dict | None = None):
        self.document = document

    async def load(self) -> PoolSnapshot | None:
        if self.document is None:
            return None
        return PoolSnapshot.from_document(self.document)

    async def save(self, snapshot: PoolSnapshot) -> None:
        self.document = snapshot.to_document()
