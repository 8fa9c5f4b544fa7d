"""Top level application object for caseforge front-ends."""

from __future__ import annotations

import logging
from typing import Any

from .config import CaseForgeConfig
from .domain.audit import AuditTrail, RiskClassifier
from .domain.bulk_sale import BulkSaleSaga
from .domain.case_opening import CaseOpeningStateMachine
from .domain.clock import Clock, system_clock
from .domain.coordinator import ActionCoordinator, OpenCaseRequest
from .domain.events import EventBus
from .domain.idempotency import IdempotencyGuard
from .domain.projection import LedgerProjection
from .domain.rate_limit import EscalatingLockout, SlidingWindowLimiter
from .ledger.base import Ledger
from .storage.base import AuditStore, SessionStore
from .storage.memory import InMemoryAuditStore, InMemorySessionStore
from .storage.sqlalchemy import AsyncSQLAlchemyStorage

logger = logging.getLogger(__name__)


class CaseForgeApp:
    """Central dependency container used by front-ends and tools."""

    def __init__(
        self,
        config: CaseForgeConfig,
        *,
        ledger: Ledger,
        session_store: SessionStore | None = None,
        audit_store: AuditStore | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.event_bus = event_bus or EventBus()
        self.clock = clock or system_clock

        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        self.session_store, self.audit_store = self._wire_storage(session_store, audit_store)

        self.limiter = SlidingWindowLimiter(
            observation_window_ms=config.risk.window_ms, clock=self.clock
        )
        self.classifier = RiskClassifier(self.limiter, config.risk)
        self.lockout = EscalatingLockout(
            config.lockout, overrides=config.lockout_overrides, clock=self.clock
        )
        self.guard = IdempotencyGuard(
            self.session_store, ttl_ms=config.idempotency.session_ttl_ms, clock=self.clock
        )
        self.audit = AuditTrail(
            self.audit_store, self.classifier, clock=self.clock
        )
        self.projection = LedgerProjection(
            ledger,
            self.event_bus,
            retry=config.retry,
            rpc_timeout=config.rpc_timeout_seconds,
            clock=self.clock,
        )
        self.saga = BulkSaleSaga(
            ledger, self.event_bus, config=config.saga, rpc_timeout=config.rpc_timeout_seconds
        )
        self.coordinator = ActionCoordinator(
            ledger=ledger,
            limiter=self.limiter,
            lockout=self.lockout,
            guard=self.guard,
            audit=self.audit,
            projection=self.projection,
            saga=self.saga,
            event_bus=self.event_bus,
            config=config,
            clock=self.clock,
        )

    def _wire_storage(
        self,
        session_store: SessionStore | None,
        audit_store: AuditStore | None,
    ) -> tuple[SessionStore, AuditStore]:
        if session_store and audit_store:
            return session_store, audit_store

        backend = self.config.storage.backend
        if backend == "memory":
            return (
                session_store or InMemorySessionStore(),
                audit_store or InMemoryAuditStore(),
            )
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return (
                session_store or storage.session_store(),
                audit_store or storage.audit_store(),
            )
        raise ValueError(f"Unsupported storage backend {backend}")

    def new_case_opening(self, request: OpenCaseRequest) -> CaseOpeningStateMachine:
        """Start a new gesture. Each gesture owns its own latch."""
        return CaseOpeningStateMachine(
            self.coordinator,
            request,
            event_bus=self.event_bus,
            debounce_ms=self.config.idempotency.debounce_ms,
        )

    async def sweep(self) -> dict[str, int]:
        """Drop expired limiter windows, lockout records and session tokens."""
        swept = {
            "rate_windows": self.limiter.sweep(),
            "lockouts": self.lockout.sweep(),
            "sessions": await self.guard.sweep(),
        }
        logger.debug("Sweep removed %s", swept)
        return swept

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "rate_limits": {
                action: {"max": rule.max_requests, "windowMs": rule.window_ms}
                for action, rule in self.config.rate_limits.items()
            },
            "lockout": {
                "maxAttempts": self.config.lockout.max_attempts,
                "resetIntervalMs": self.config.lockout.reset_interval_ms,
                "blockDurationMs": self.config.lockout.block_duration_ms,
            },
            "session_ttl_ms": self.config.idempotency.session_ttl_ms,
            "compensate_on_commit_failure": self.config.saga.compensate_on_commit_failure,
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()

    async def close(self) -> None:
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
