"""In-memory storage backend for caseforge."""

from __future__ import annotations

from collections import deque
from typing import Deque, Sequence

from .base import AuditEntry, AuditStore, IdempotencyToken, SessionStore


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._tokens: dict[tuple[str, str], IdempotencyToken] = {}

    async def get(self, user_id: str, resource_id: str) -> IdempotencyToken | None:
        return self._tokens.get((user_id, resource_id))

    async def put(self, token: IdempotencyToken) -> None:
        self._tokens[(token.user_id, token.resource_id)] = token

    async def delete(self, user_id: str, resource_id: str) -> None:
        self._tokens.pop((user_id, resource_id), None)

    async def sweep(self, now: float) -> int:
        expired = [key for key, token in self._tokens.items() if token.is_expired(now)]
        for key in expired:
            del self._tokens[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._tokens)


class InMemoryAuditStore(AuditStore):
    def __init__(self, *, maxlen: int = 1000) -> None:
        self._entries: Deque[AuditEntry] = deque(maxlen=maxlen)

    async def add_entry(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    async def entries(self, user_id: str | None = None, limit: int = 100) -> Sequence[AuditEntry]:
        filtered = [
            entry for entry in reversed(self._entries) if user_id is None or entry.user_id == user_id
        ]
        return filtered[:limit]

    def dump(self) -> list[AuditEntry]:
        return list(self._entries)
