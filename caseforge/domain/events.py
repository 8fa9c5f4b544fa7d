"""Async pub-sub used to tell presentation collaborators what changed."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

CASE_PHASE_CHANGED = "case.phase.changed"
PROJECTION_INVALIDATED = "projection.invalidated"
PROJECTION_REFRESHED = "projection.refreshed"
ACTION_COMPLETED = "action.completed"
RECONCILIATION_REQUIRED = "saga.reconciliation.required"

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]


class EventBus:
    """Listeners run sequentially in subscription order."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    def unsubscribe(self, event_name: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event_name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
