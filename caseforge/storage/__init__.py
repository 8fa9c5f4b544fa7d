"""Storage backends for caseforge."""

from .base import AuditEntry, AuditStore, IdempotencyToken, RiskLevel, SessionStore
from .memory import InMemoryAuditStore, InMemorySessionStore
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "AuditEntry",
    "AuditStore",
    "IdempotencyToken",
    "RiskLevel",
    "SessionStore",
    "InMemoryAuditStore",
    "InMemorySessionStore",
    "AsyncSQLAlchemyStorage",
]
