"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # External AI text service
    ai_provider: str = "google"  # "google" | "openai"
    ai_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_model: str = "gemma-3-27b-it"
    ai_temperature: float = 0.2
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-4o-mini"
    # Seeds the credential pool when no pool document exists yet
    ai_api_key: str = ""

    # Dispatch
    default_concurrency: int = 4  # Slots per credential
    max_concurrency: int = 16
    request_timeout_seconds: float = 30.0  # Per attempt, then next credential

    # Same-key retry on 429/500/503 before the dispatcher moves on
    ai_max_retries: int = 3
    ai_retry_base_delay_seconds: float = 0.4  # Doubles per retry, plus jitter
    ai_retry_max_delay_seconds: float = 10.0  # Longer Retry-After: give up on this key

    # Response cache (0 disables)
    response_cache_ttl_seconds: float = 300.0
    response_cache_max_entries: int = 1000

    # Credential store
    credential_store_backend: str = "json"  # "json" | "dynamodb"
    credential_store_path: str = "credentials.json"
    dynamodb_table_name: str = "vocab-gateway-credentials"
    aws_region: str = "us-east-1"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def coerce_concurrency(self, value) -> int:
        """Clamp a stored concurrency value into [1, max_concurrency]."""
        try:
            n = int(value)
        except (TypeError, ValueError):
            return self.default_concurrency
        return max(1, min(self.max_concurrency, n))


@lru_cache
def get_settings() -> Settings:
    return Settings()
