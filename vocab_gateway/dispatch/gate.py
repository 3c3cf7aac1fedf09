"""Per-credential concurrency gate.

Each credential gets a lane: a counting gate whose capacity is the
process-wide concurrency setting. Waiters are served FIFO. Resizing only
affects future grants; holders above a reduced capacity keep their slot
until they release it.

Every successful `acquire()` must be paired with exactly one `release()`;
use `slot()` to get that on every exit path.
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager

from vocab_gateway.dispatch.registry import CancellationToken
from vocab_gateway.errors import Cancelled


class _Lane:
    __slots__ = ("held", "waiters")

    def __init__(self):
        self.held = 0
        self.waiters: deque[asyncio.Future] = deque()


class RateGate:

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._lanes: dict[str, _Lane] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def in_flight(self, credential_id: str) -> int:
        lane = self._lanes.get(credential_id)
        return lane.held if lane else 0

    def waiting(self, credential_id: str) -> int:
        lane = self._lanes.get(credential_id)
        return sum(1 for f in lane.waiters if not f.done()) if lane else 0

    def resize(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        for lane in list(self._lanes.values()):
            self._wake(lane)

    async def acquire(self, credential_id: str, token: CancellationToken | None = None) -> None:
        """Wait for a slot on this credential, or raise Cancelled if the token fires first."""
        if token is not None:
            token.raise_if_cancelled()

        lane = self._lanes.setdefault(credential_id, _Lane())
        if lane.held < self._capacity and not lane.waiters:
            lane.held += 1
            return

        grant = asyncio.get_running_loop().create_future()
        lane.waiters.append(grant)
        cancel_wait = asyncio.ensure_future(token.wait()) if token is not None else None
        try:
            if cancel_wait is None:
                await grant
            else:
                await asyncio.wait({grant, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._abandon(credential_id, lane, grant)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if token is not None and token.cancelled:
            self._abandon(credential_id, lane, grant)
            raise Cancelled("Request cancelled while waiting for a slot")

    def release(self, credential_id: str) -> None:
        lane = self._lanes.get(credential_id)
        if lane is None or lane.held == 0:
            raise RuntimeError(f"release() without a matching acquire() for {credential_id}")
        lane.held -= 1
        self._wake(lane)
        self._discard_if_idle(credential_id, lane)

    @asynccontextmanager
    async def slot(self, credential_id: str, token: CancellationToken | None = None):
        await self.acquire(credential_id, token)
        try:
            yield
        finally:
            self.release(credential_id)

    def _wake(self, lane: _Lane) -> None:
        while lane.waiters and lane.held < self._capacity:
            grant = lane.waiters.popleft()
            if grant.done():
                continue
            lane.held += 1
            grant.set_result(None)

    def _abandon(self, credential_id: str, lane: _Lane, grant: asyncio.Future) -> None:
        """Withdraw a waiter. A slot granted in the meantime is handed back."""
        if grant.done() and not grant.cancelled():
            self.release(credential_id)
            return
        grant.cancel()
        if grant in lane.waiters:
            lane.waiters.remove(grant)
        self._discard_if_idle(credential_id, lane)

    def _discard_if_idle(self, credential_id: str, lane: _Lane) -> None:
        if lane.held == 0 and not lane.waiters and self._lanes.get(credential_id) is lane:
            del self._lanes[credential_id]
