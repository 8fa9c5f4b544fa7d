from datetime import datetime, timedelta, timezone

import pytest

from caseforge.app import CaseForgeApp
from caseforge.config import CaseForgeConfig, StorageConfig
from caseforge.domain.coordinator import OpenCaseRequest
from caseforge.domain.results import Ok
from caseforge.storage.base import AuditEntry, IdempotencyToken, RiskLevel
from caseforge.storage.sqlalchemy import AsyncSQLAlchemyStorage


@pytest.fixture()
def dsn(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'caseforge.db'}"


@pytest.mark.asyncio()
async def test_session_store_roundtrip_and_sweep(dsn):
    storage = AsyncSQLAlchemyStorage(dsn)
    await storage.init_models()
    store = storage.session_store()
    try:
        token = IdempotencyToken(
            session_id="s-1", user_id="u", resource_id="c", created_at=1_000.0, ttl_ms=500.0
        )
        await store.put(token)
        loaded = await store.get("u", "c")
        assert loaded == token

        token.consumed = True
        await store.put(token)
        assert (await store.get("u", "c")).consumed

        await store.put(
            IdempotencyToken(
                session_id="s-2", user_id="u", resource_id="d", created_at=2_000.0, ttl_ms=500.0
            )
        )
        assert await store.sweep(1_600.0) == 1
        assert await store.get("u", "c") is None
        assert await store.get("u", "d") is not None

        await store.delete("u", "d")
        assert await store.get("u", "d") is None
    finally:
        await storage.dispose()


@pytest.mark.asyncio()
async def test_audit_store_newest_first(dsn):
    storage = AsyncSQLAlchemyStorage(dsn)
    await storage.init_models()
    store = storage.audit_store()
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    try:
        for offset, (user, action) in enumerate(
            [("u", "open_case"), ("v", "sell_item"), ("u", "sell_all")]
        ):
            await store.add_entry(
                AuditEntry(
                    user_id=user,
                    action=action,
                    details={"n": offset},
                    success=True,
                    risk_level=RiskLevel.LOW if offset else RiskLevel.HIGH,
                    timestamp=start + timedelta(seconds=offset),
                )
            )

        mine = await store.entries("u")
        assert [entry.action for entry in mine] == ["sell_all", "open_case"]
        assert mine[1].risk_level is RiskLevel.HIGH
        assert mine[1].details == {"n": 0}
        assert mine[0].timestamp.tzinfo is not None

        assert [entry.action for entry in await store.entries(limit=2)] == ["sell_all", "sell_item"]
    finally:
        await storage.dispose()


@pytest.mark.asyncio()
async def test_app_wires_sqlalchemy_backend(dsn, fault_ledger, manual_clock, case, user_id):
    config = CaseForgeConfig(storage=StorageConfig(backend="sqlalchemy", dsn=dsn))
    app = CaseForgeApp(config, ledger=fault_ledger, clock=manual_clock)
    await app.init_backend()
    try:
        fault_ledger.seed_balance(user_id, 500)
        result = await app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))
        assert isinstance(result, Ok)
        entries = await app.audit.entries(user_id)
        assert len(entries) == 1
        assert entries[0].details["case_id"] == case.case_id
    finally:
        await app.close()
