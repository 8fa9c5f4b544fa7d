"""Ledger contracts and the in-memory reference ledger."""

from .base import BalanceResponse, CommitResponse, Ledger, OpenCaseResponse, SellItemResponse
from .memory import InMemoryLedger
from .transport import ledger_call

__all__ = [
    "BalanceResponse",
    "CommitResponse",
    "Ledger",
    "OpenCaseResponse",
    "SellItemResponse",
    "InMemoryLedger",
    "ledger_call",
]
