"""Sliding-window rate limiting and escalating lockouts.

Both components keep their state in process memory only. They are owned by
the application container rather than living at module level, so every test
can build an isolated instance and drive it with a manual clock.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Deque, Mapping

from ..config import LockoutPolicy
from .clock import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RateWindowEntry:
    key: str
    timestamps: Deque[float] = field(default_factory=deque)
    attempts: Deque[float] = field(default_factory=deque)
    max_requests: int = 0
    window_ms: float = 0.0


class SlidingWindowLimiter:
    """Rolling per-key counter. Not a token bucket: admission is not spaced.

    Only admitted requests count against the limit. Every call, denied or
    not, is also kept for ``observation_window_ms`` as a frequency signal.
    """

    def __init__(
        self,
        *,
        max_requests: int = 10,
        window_ms: float = 60_000,
        observation_window_ms: float = 60_000,
        clock: Clock | None = None,
    ) -> None:
        self._default_max = max_requests
        self._default_window = window_ms
        self._observation_window = observation_window_ms
        self._clock = clock or system_clock
        self._entries: dict[str, RateWindowEntry] = {}

    def is_allowed(
        self,
        key: str,
        max_requests: int | None = None,
        window_ms: float | None = None,
    ) -> bool:
        now = self._clock()
        limit = self._default_max if max_requests is None else max_requests
        window = self._default_window if window_ms is None else window_ms

        entry = self._entries.get(key)
        if entry is None:
            entry = RateWindowEntry(key=key)
            self._entries[key] = entry
        entry.max_requests = limit
        entry.window_ms = window

        attempts = entry.attempts
        retention = max(window, self._observation_window)
        while attempts and now - attempts[0] >= retention:
            attempts.popleft()
        attempts.append(now)

        timestamps = entry.timestamps
        while timestamps and now - timestamps[0] >= window:
            timestamps.popleft()

        if len(timestamps) >= limit:
            logger.debug("Rate limit denied %s (%s/%s in %sms).", key, len(timestamps), limit, window)
            return False
        timestamps.append(now)
        return True

    def count(self, key: str, window_ms: float | None = None) -> int:
        """Number of recorded requests for ``key`` in the trailing window."""
        entry = self._entries.get(key)
        if entry is None:
            return 0
        window = window_ms if window_ms is not None else (entry.window_ms or self._default_window)
        now = self._clock()
        return sum(1 for ts in entry.timestamps if now - ts < window)

    def attempts(self, key: str, window_ms: float | None = None) -> int:
        """Calls to :meth:`is_allowed` for ``key`` in the trailing window, denied ones included."""
        entry = self._entries.get(key)
        if entry is None:
            return 0
        window = self._observation_window if window_ms is None else window_ms
        now = self._clock()
        return sum(1 for ts in entry.attempts if now - ts < window)

    def remaining_requests(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is None:
            return self._default_max
        return max(0, entry.max_requests - self.count(key, entry.window_ms))

    def reset_time(self, key: str) -> float:
        """Instant (ms) at which the oldest valid request leaves the window."""
        entry = self._entries.get(key)
        if entry is None:
            return 0.0
        now = self._clock()
        valid = [ts for ts in entry.timestamps if now - ts < entry.window_ms]
        if not valid:
            return 0.0
        return valid[0] + entry.window_ms

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop keys with no admitted request and no observed attempt left."""
        now = self._clock()
        stale = [
            key
            for key, entry in self._entries.items()
            if not any(now - ts < entry.window_ms for ts in entry.timestamps)
            and not any(now - ts < self._observation_window for ts in entry.attempts)
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)


@dataclass(slots=True)
class LockoutRecord:
    key: str
    count: int = 0
    last_attempt: float = 0.0
    blocked: bool = False
    blocked_until: float = 0.0


@dataclass(frozen=True, slots=True)
class LockoutDecision:
    allowed: bool
    tripped: bool = False
    retry_after_ms: float = 0.0


class EscalatingLockout:
    """Hard cooldown after repeated attempts inside a short interval."""

    def __init__(
        self,
        policy: LockoutPolicy | None = None,
        *,
        overrides: Mapping[str, LockoutPolicy] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._policy = policy or LockoutPolicy()
        self._overrides = dict(overrides or {})
        self._clock = clock or system_clock
        self._records: dict[str, LockoutRecord] = {}

    def policy_for(self, action: str) -> LockoutPolicy:
        return self._overrides.get(action, self._policy)

    def can_perform(self, user_id: str, action: str) -> bool:
        return self.evaluate(user_id, action).allowed

    def evaluate(self, user_id: str, action: str) -> LockoutDecision:
        key = action_key(user_id, action)
        policy = self.policy_for(action)
        now = self._clock()

        record = self._records.get(key)
        if record is None:
            self._records[key] = LockoutRecord(key=key, count=1, last_attempt=now)
            return LockoutDecision(allowed=True)

        if record.blocked and now < record.blocked_until:
            return LockoutDecision(allowed=False, retry_after_ms=record.blocked_until - now)

        if record.blocked:
            record.blocked = False
            record.blocked_until = 0.0
            record.count = 1
            record.last_attempt = now
            logger.info("Lockout expired for %s.", key)
            return LockoutDecision(allowed=True)

        if now - record.last_attempt > policy.reset_interval_ms:
            record.count = 1
            record.last_attempt = now
            return LockoutDecision(allowed=True)

        record.count += 1
        record.last_attempt = now
        if record.count > policy.max_attempts:
            record.blocked = True
            record.blocked_until = now + policy.block_duration_ms
            logger.warning(
                "Lockout triggered for %s after %s attempts; blocked for %sms.",
                key,
                record.count,
                policy.block_duration_ms,
            )
            return LockoutDecision(
                allowed=False, tripped=True, retry_after_ms=policy.block_duration_ms
            )
        return LockoutDecision(allowed=True)

    def remaining_time(self, user_id: str, action: str) -> float:
        record = self._records.get(action_key(user_id, action))
        if record is None or not record.blocked:
            return 0.0
        return max(0.0, record.blocked_until - self._clock())

    def record(self, user_id: str, action: str) -> LockoutRecord | None:
        record = self._records.get(action_key(user_id, action))
        return replace(record) if record else None

    def clear_user(self, user_id: str) -> None:
        prefix = f"{user_id}:"
        for key in [key for key in self._records if key.startswith(prefix)]:
            del self._records[key]

    def sweep(self) -> int:
        """Forget records that are neither blocked nor inside their interval."""
        now = self._clock()
        stale: list[str] = []
        for key, record in self._records.items():
            action = key.split(":", 1)[1] if ":" in key else key
            policy = self.policy_for(action)
            if record.blocked and now < record.blocked_until:
                continue
            if now - record.last_attempt > policy.reset_interval_ms:
                stale.append(key)
        for key in stale:
            del self._records[key]
        return len(stale)


def action_key(user_id: str, action: str) -> str:
    return f"{user_id}:{action}"
