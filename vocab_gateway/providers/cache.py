"""In-memory TTL cache for generated text, keyed by provider scope and prompt hash.

The enrichment service stores a reply only after it parsed successfully,
so a reply that one key got back unusable is never served to the next key.
"""

import hashlib
import time
from collections import OrderedDict


class ResponseCache:

    def __init__(self, ttl_seconds: float, max_entries: int = 1000):
        self._ttl = ttl_seconds
        self._max = max_entries
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._ttl > 0 and self._max > 0

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(scope: str, prompt: str) -> str:
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()
        return f"{scope}|{digest}"

    def get(self, key: str) -> str | None:
        if not self.enabled or key not in self._entries:
            return None
        value, expires_at = self._entries[key]
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str) -> None:
        if not self.enabled:
            return
        self._entries.pop(key, None)
        while len(self._entries) >= self._max:
            self._entries.popitem(last=False)  # oldest first
        self._entries[key] = (value, time.monotonic() + self._ttl)

    def clear(self) -> None:
        self._entries.clear()
