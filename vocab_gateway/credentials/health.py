"""Runtime health of each credential: error streaks, cooldowns and latency.

Health is process-local and is not persisted. A restart gives every key a
clean slate, the same as `reset()`.
"""

import time
from dataclasses import dataclass

MAX_CONSECUTIVE_ERRORS = 3
COOLDOWN_BASE_SECONDS = 30.0
COOLDOWN_MAX_SECONDS = 300.0
LATENCY_SMOOTHING = 0.1


@dataclass
class KeyHealth:
    consecutive_errors: int = 0
    total_requests: int = 0
    total_errors: int = 0
    avg_response_ms: float = 0.0
    last_error: str = ""
    last_error_at: float | None = None  # wall clock, for display
    cooldown_until: float | None = None  # monotonic

    def cooldown_remaining(self, now: float) -> float:
        if self.cooldown_until is None:
            return 0.0
        return max(0.0, self.cooldown_until - now)


def cooldown_seconds(consecutive_errors: int) -> float:
    """Exponential backoff from the base, doubling per error past the first."""
    exponent = max(0, consecutive_errors - 1)
    return min(COOLDOWN_MAX_SECONDS, COOLDOWN_BASE_SECONDS * (2 ** exponent))


class HealthTracker:

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._health: dict[str, KeyHealth] = {}

    def get(self, credential_id: str) -> KeyHealth:
        return self._health.setdefault(credential_id, KeyHealth())

    def in_cooldown(self, credential_id: str) -> bool:
        health = self._health.get(credential_id)
        return health is not None and health.cooldown_remaining(self._clock()) > 0

    def cooldown_remaining(self, credential_id: str) -> float:
        health = self._health.get(credential_id)
        return health.cooldown_remaining(self._clock()) if health else 0.0

    def record_success(self, credential_id: str, latency_ms: float) -> None:
        health = self.get(credential_id)
        health.total_requests += 1
        health.consecutive_errors = 0
        health.cooldown_until = None
        if health.avg_response_ms:
            health.avg_response_ms = (
                health.avg_response_ms * (1 - LATENCY_SMOOTHING) + latency_ms * LATENCY_SMOOTHING
            )
        else:
            health.avg_response_ms = latency_ms

    def record_failure(self, credential_id: str, error: str, retry_after: float | None = None) -> float:
        """Count a failed call. Returns the cooldown applied in seconds, 0 if none.

        A server-supplied retry_after puts the key in cooldown at once;
        otherwise cooldown starts at MAX_CONSECUTIVE_ERRORS in a row.
        """
        health = self.get(credential_id)
        health.total_requests += 1
        health.total_errors += 1
        health.consecutive_errors += 1
        health.last_error = error
        health.last_error_at = time.time()

        if retry_after is not None and retry_after > 0:
            seconds = min(COOLDOWN_MAX_SECONDS, retry_after)
        elif health.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
            seconds = cooldown_seconds(health.consecutive_errors)
        else:
            return 0.0
        health.cooldown_until = self._clock() + seconds
        return seconds

    def reset(self, credential_id: str) -> None:
        health = self._health.get(credential_id)
        if health is None:
            return
        health.consecutive_errors = 0
        health.cooldown_until = None
        health.last_error = ""
        health.last_error_at = None

    def forget(self, credential_id: str) -> None:
        self._health.pop(credential_id, None)

    def to_public(self, credential_id: str) -> dict:
        health = self._health.get(credential_id) or KeyHealth()
        return {
            "consecutiveErrors": health.consecutive_errors,
            "totalRequests": health.total_requests,
            "totalErrors": health.total_errors,
            "avgResponseMs": round(health.avg_response_ms, 1),
            "lastError": health.last_error,
            "cooldownSeconds": round(health.cooldown_remaining(self._clock()), 1),
        }
