"""Request registry: caller-supplied request ids mapped to cancellation tokens.

Duplicate ids are rejected while the first request is still registered.
An entry stays registered until the dispatcher calls `end()`, even after
it was cancelled, so a retry with the same id cannot overtake a request
that is still unwinding.
"""

import asyncio
import time
from dataclasses import dataclass, field

from vocab_gateway.errors import Cancelled, DuplicateRequest


class CancellationToken:
    """Cooperative cancellation flag, awaitable."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Request cancelled")


@dataclass
class RequestEntry:
    request_id: str
    token: CancellationToken
    started_at: float = field(default_factory=time.monotonic)


class RequestRegistry:

    def __init__(self):
        self._entries: dict[str, RequestEntry] = {}

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def begin(self, request_id: str) -> CancellationToken:
        if request_id in self._entries:
            raise DuplicateRequest(f"Request already in flight: {request_id}")
        entry = RequestEntry(request_id=request_id, token=CancellationToken())
        self._entries[request_id] = entry
        return entry.token

    def cancel(self, request_id: str) -> bool:
        """Signal a live request. Unknown or already-cancelled ids return False."""
        entry = self._entries.get(request_id)
        if entry is None or entry.token.cancelled:
            return False
        entry.token.cancel()
        return True

    def end(self, request_id: str) -> None:
        self._entries.pop(request_id, None)

    def started_at(self, request_id: str) -> float | None:
        entry = self._entries.get(request_id)
        return entry.started_at if entry else None
