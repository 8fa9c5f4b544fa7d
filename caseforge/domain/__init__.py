"""Domain models and services."""

from .audit import AuditTrail, RiskClassifier
from .bulk_sale import BulkSaleSaga
from .case_opening import CaseOpeningStateMachine, CasePhase
from .coordinator import ActionCoordinator, OpenCaseRequest
from .events import EventBus
from .exceptions import (
    CaseForgeError,
    CompensationFailure,
    DuplicateAttempt,
    InvalidTransition,
    RemoteRejection,
    ThrottledError,
    TransportFailure,
    ValidationError,
)
from .idempotency import IdempotencyGuard, LatchState, OneShotLatch, TrailingDebouncer
from .projection import LedgerProjection, ProjectionSnapshot
from .rate_limit import EscalatingLockout, SlidingWindowLimiter
from .results import Err, ErrorKind, Ok, Result
from .rewards import (
    ActionType,
    BulkSaleTransaction,
    CaseDefinition,
    CaseOpeningResult,
    CaseReward,
    InventoryItem,
    Rarity,
    RewardItem,
    RewardKind,
    SagaStatus,
    SaleReceipt,
)

__all__ = [
    "AuditTrail",
    "RiskClassifier",
    "BulkSaleSaga",
    "CaseOpeningStateMachine",
    "CasePhase",
    "ActionCoordinator",
    "OpenCaseRequest",
    "EventBus",
    "CaseForgeError",
    "CompensationFailure",
    "DuplicateAttempt",
    "InvalidTransition",
    "RemoteRejection",
    "ThrottledError",
    "TransportFailure",
    "ValidationError",
    "IdempotencyGuard",
    "LatchState",
    "OneShotLatch",
    "TrailingDebouncer",
    "LedgerProjection",
    "ProjectionSnapshot",
    "EscalatingLockout",
    "SlidingWindowLimiter",
    "Err",
    "ErrorKind",
    "Ok",
    "Result",
    "ActionType",
    "BulkSaleTransaction",
    "CaseDefinition",
    "CaseOpeningResult",
    "CaseReward",
    "InventoryItem",
    "Rarity",
    "RewardItem",
    "RewardKind",
    "SagaStatus",
    "SaleReceipt",
]
