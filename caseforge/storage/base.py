"""Storage abstractions used by the caseforge services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence


@dataclass(slots=True)
class IdempotencyToken:
    session_id: str
    user_id: str
    resource_id: str
    created_at: float
    ttl_ms: float
    consumed: bool = False

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_ms

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    user_id: str
    action: str
    details: Mapping[str, Any]
    success: bool
    risk_level: RiskLevel
    timestamp: datetime = field(compare=False)


class SessionStore(Protocol):
    async def get(self, user_id: str, resource_id: str) -> IdempotencyToken | None:
        ...

    async def put(self, token: IdempotencyToken) -> None:
        ...

    async def delete(self, user_id: str, resource_id: str) -> None:
        ...

    async def sweep(self, now: float) -> int:
        ...


class AuditStore(Protocol):
    async def add_entry(self, entry: AuditEntry) -> None:
        ...

    async def entries(self, user_id: str | None = None, limit: int = 100) -> Sequence[AuditEntry]:
        ...
