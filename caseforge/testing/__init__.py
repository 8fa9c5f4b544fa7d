"""Testing utilities for caseforge."""

from ..domain.clock import ManualClock
from .factory import CaseFactory, RewardFactory
from .fixtures import app_fixture, fault_ledger, manual_clock, memory_app
from .ledger import FaultInjectingLedger

__all__ = [
    "ManualClock",
    "CaseFactory",
    "RewardFactory",
    "app_fixture",
    "fault_ledger",
    "manual_clock",
    "memory_app",
    "FaultInjectingLedger",
]
