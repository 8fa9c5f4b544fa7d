"""At-most-once dispatch for user gestures.

Three mechanisms live here:

* :class:`OneShotLatch` is the first-wins gate owned by a single gesture.
* :class:`TrailingDebouncer` coalesces rapid retriggers into the last one.
* :class:`IdempotencyGuard` persists a session token per ``(user, resource)``
  so that a reloaded client reattaches to an in-flight opening instead of
  paying twice. A token that never sees a terminal result stays unconsumed
  until its TTL runs out.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from ..storage.base import IdempotencyToken, SessionStore
from .clock import Clock, system_clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatchState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    DONE = "done"


class OneShotLatch:
    """Explicit Idle -> InFlight -> Done gate for one gesture.

    ``release`` only moves InFlight back to Idle (a failed dispatch may be
    retried); Done is permanent.
    """

    def __init__(self) -> None:
        self._state = LatchState.IDLE

    @property
    def state(self) -> LatchState:
        return self._state

    def try_acquire(self) -> bool:
        if self._state is not LatchState.IDLE:
            return False
        self._state = LatchState.IN_FLIGHT
        return True

    def complete(self) -> None:
        if self._state is LatchState.IN_FLIGHT:
            self._state = LatchState.DONE

    def release(self) -> None:
        if self._state is LatchState.IN_FLIGHT:
            self._state = LatchState.IDLE


class TrailingDebouncer(Generic[T]):
    """Run ``func`` once ``delay_ms`` after the most recent trigger."""

    def __init__(self, func: Callable[..., Awaitable[T]], delay_ms: float) -> None:
        self._func = func
        self._delay = max(0.0, delay_ms) / 1000.0
        self._task: asyncio.Task[T] | None = None
        self._firing: asyncio.Task[Any] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done() and self._task is not self._firing

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire(args, kwargs))

    def cancel(self) -> None:
        """Cancel a trigger whose delay has not elapsed. A started call runs on."""
        task = self._task
        if task is not None and self.pending:
            task.cancel()

    async def wait(self) -> T | None:
        """Wait for the trigger that eventually fires and return its result."""
        while self._task is not None:
            task = self._task
            await asyncio.wait({task})
            if task.cancelled():
                if task is self._task:
                    return None
                continue
            return task.result()
        return None

    async def _fire(self, args: tuple, kwargs: dict) -> T:
        await asyncio.sleep(self._delay)
        self._firing = asyncio.current_task()
        try:
            return await self._func(*args, **kwargs)
        finally:
            if self._firing is asyncio.current_task():
                self._firing = None


@dataclass(frozen=True, slots=True)
class SessionClaim:
    token: IdempotencyToken
    reattached: bool


class IdempotencyGuard:
    """Issue and consume persisted session tokens keyed by (user, resource)."""

    def __init__(
        self,
        store: SessionStore,
        *,
        ttl_ms: float = 600_000,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._ttl_ms = ttl_ms
        self._clock = clock or system_clock
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    async def begin(self, user_id: str, resource_id: str) -> SessionClaim:
        now = self._clock()
        existing = await self._store.get(user_id, resource_id)
        if existing is not None and not existing.consumed and not existing.is_expired(now):
            logger.info(
                "Reattaching %s/%s to in-flight session %s.",
                user_id,
                resource_id,
                existing.session_id,
            )
            return SessionClaim(token=existing, reattached=True)
        if existing is not None:
            await self._store.delete(user_id, resource_id)

        token = IdempotencyToken(
            session_id=self._id_factory(),
            user_id=user_id,
            resource_id=resource_id,
            created_at=now,
            ttl_ms=self._ttl_ms,
        )
        await self._store.put(token)
        return SessionClaim(token=token, reattached=False)

    async def consume(self, token: IdempotencyToken) -> bool:
        """Mark ``token`` consumed. Returns False when it expired or was replaced."""
        stored = await self._store.get(token.user_id, token.resource_id)
        if stored is None or stored.session_id != token.session_id or stored.consumed:
            return False
        if stored.is_expired(self._clock()):
            await self._store.delete(token.user_id, token.resource_id)
            return False
        stored.consumed = True
        await self._store.put(stored)
        return True

    async def active_session(self, user_id: str, resource_id: str) -> IdempotencyToken | None:
        token = await self._store.get(user_id, resource_id)
        if token is None or token.consumed or token.is_expired(self._clock()):
            return None
        return token

    async def sweep(self) -> int:
        return await self._store.sweep(self._clock())
