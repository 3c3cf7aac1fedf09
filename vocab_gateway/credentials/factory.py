"""Factory for credential store backends."""

from vocab_gateway.config.settings import get_settings
from vocab_gateway.credentials.store import CredentialStore, JSONCredentialStore, MemoryCredentialStore

_store: CredentialStore | None = None


def get_credential_store() -> CredentialStore:
    """Get the credential store singleton for the configured backend."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.credential_store_backend

    if backend == "json":
        if settings.credential_store_path:
            _store = JSONCredentialStore(settings.credential_store_path)
        else:
            _store = MemoryCredentialStore()  # empty path = no persistence
        return _store

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from vocab_gateway.credentials.dynamodb_store import DynamoDBCredentialStore
        _store = DynamoDBCredentialStore(
            table_name=settings.dynamodb_table_name,
            region=settings.aws_region,
        )
        return _store

    raise ValueError(f"Unknown credential store backend: {backend}")
