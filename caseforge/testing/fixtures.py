"""Pytest fixtures for caseforge."""

from __future__ import annotations

import pytest

from ..app import CaseForgeApp
from ..config import CaseForgeConfig
from ..domain.clock import ManualClock
from .ledger import FaultInjectingLedger


@pytest.fixture()
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def fault_ledger() -> FaultInjectingLedger:
    return FaultInjectingLedger()


@pytest.fixture()
def memory_app(manual_clock: ManualClock, fault_ledger: FaultInjectingLedger) -> CaseForgeApp:
    return app_fixture(ledger=fault_ledger, clock=manual_clock)


def app_fixture(
    *,
    ledger: FaultInjectingLedger | None = None,
    clock: ManualClock | None = None,
    config: CaseForgeConfig | None = None,
) -> CaseForgeApp:
    """Helper for ad-hoc tests where pytest fixtures are not available."""
    return CaseForgeApp(
        config or CaseForgeConfig(bot_token="test"),
        ledger=ledger or FaultInjectingLedger(),
        clock=clock or ManualClock(),
    )
