"""SQLAlchemy storage backend for caseforge."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Sequence

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .base import AuditEntry, AuditStore, IdempotencyToken, RiskLevel, SessionStore


class Base(DeclarativeBase):
    pass


class SessionTokenTable(Base):
    __tablename__ = "caseforge_session_tokens"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    resource_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[float] = mapped_column(Float)
    ttl_ms: Mapped[float] = mapped_column(Float)
    consumed: Mapped[bool] = mapped_column(Boolean, default=False)


class AuditTable(Base):
    __tablename__ = "caseforge_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    action: Mapped[str] = mapped_column(String(64))
    details: Mapped[dict] = mapped_column(JSON)
    success: Mapped[bool] = mapped_column(Boolean)
    risk_level: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(dsn, echo=echo, future=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    def session_store(self) -> "AsyncSQLAlchemySessionStore":
        return AsyncSQLAlchemySessionStore(self._session_factory)

    def audit_store(self) -> "AsyncSQLAlchemyAuditStore":
        return AsyncSQLAlchemyAuditStore(self._session_factory)


class AsyncSQLAlchemySessionStore(SessionStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str, resource_id: str) -> IdempotencyToken | None:
        async with self._session_factory() as session:
            row = await session.get(SessionTokenTable, (user_id, resource_id))
            if row is None:
                return None
            return IdempotencyToken(
                session_id=row.session_id,
                user_id=row.user_id,
                resource_id=row.resource_id,
                created_at=row.created_at,
                ttl_ms=row.ttl_ms,
                consumed=row.consumed,
            )

    async def put(self, token: IdempotencyToken) -> None:
        async with self._session_factory() as session:
            row = await session.get(SessionTokenTable, (token.user_id, token.resource_id))
            if row is None:
                session.add(
                    SessionTokenTable(
                        user_id=token.user_id,
                        resource_id=token.resource_id,
                        session_id=token.session_id,
                        created_at=token.created_at,
                        ttl_ms=token.ttl_ms,
                        consumed=token.consumed,
                    )
                )
            else:
                row.session_id = token.session_id
                row.created_at = token.created_at
                row.ttl_ms = token.ttl_ms
                row.consumed = token.consumed
            await session.commit()

    async def delete(self, user_id: str, resource_id: str) -> None:
        async with self._session_factory() as session:
            stmt = delete(SessionTokenTable).where(
                SessionTokenTable.user_id == user_id,
                SessionTokenTable.resource_id == resource_id,
            )
            await session.execute(stmt)
            await session.commit()

    async def sweep(self, now: float) -> int:
        async with self._session_factory() as session:
            stmt = delete(SessionTokenTable).where(
                SessionTokenTable.created_at + SessionTokenTable.ttl_ms < now
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0


class AsyncSQLAlchemyAuditStore(AuditStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_entry(self, entry: AuditEntry) -> None:
        async with self._session_factory() as session:
            session.add(
                AuditTable(
                    user_id=entry.user_id,
                    action=entry.action,
                    details=dict(entry.details),
                    success=entry.success,
                    risk_level=entry.risk_level.value,
                    created_at=entry.timestamp,
                )
            )
            await session.commit()

    async def entries(self, user_id: str | None = None, limit: int = 100) -> Sequence[AuditEntry]:
        async with self._session_factory() as session:
            stmt = select(AuditTable).order_by(AuditTable.id.desc()).limit(limit)
            if user_id is not None:
                stmt = stmt.where(AuditTable.user_id == user_id)
            rows = (await session.execute(stmt)).scalars().all()
            return [
                AuditEntry(
                    user_id=row.user_id,
                    action=row.action,
                    details=dict(row.details or {}),
                    success=row.success,
                    risk_level=RiskLevel(row.risk_level),
                    timestamp=_aware(row.created_at),
                )
                for row in rows
            ]


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
