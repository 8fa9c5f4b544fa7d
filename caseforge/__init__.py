"""caseforge public API."""

from .app import CaseForgeApp
from .config import CaseForgeConfig
from .domain.coordinator import ActionCoordinator, OpenCaseRequest
from .domain.results import Err, ErrorKind, Ok, Result
from .ledger import InMemoryLedger, Ledger

__all__ = [
    "CaseForgeApp",
    "CaseForgeConfig",
    "ActionCoordinator",
    "OpenCaseRequest",
    "Err",
    "ErrorKind",
    "Ok",
    "Result",
    "InMemoryLedger",
    "Ledger",
]
