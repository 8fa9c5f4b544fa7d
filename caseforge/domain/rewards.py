"""Reward, case and inventory models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from .results import ErrorKind


class Rarity(str, Enum):
    CONSUMER = "consumer"
    INDUSTRIAL = "industrial"
    MIL_SPEC = "mil-spec"
    RESTRICTED = "restricted"
    CLASSIFIED = "classified"
    COVERT = "covert"
    CONTRABAND = "contraband"


class RewardKind(str, Enum):
    SKIN = "skin"
    COIN_GRANT = "coin_reward"


class ActionType(str, Enum):
    OPEN_CASE = "open_case"
    SELL_ITEM = "sell_item"
    SELL_ALL = "sell_all"


@dataclass(frozen=True, slots=True)
class RewardItem:
    """Something a case can pay out: a skin or a fixed coin grant."""

    id: str
    display_name: str
    rarity: Rarity = Rarity.CONSUMER
    monetary_value: int = 0
    kind: RewardKind = RewardKind.SKIN


@dataclass(frozen=True, slots=True)
class CaseReward:
    item: RewardItem
    weight: float = 1.0
    never_drop: bool = False


@dataclass(slots=True)
class CaseDefinition:
    """Declarative case configuration used by the in-memory ledger."""

    case_id: str
    name: str
    price: int
    rewards: Sequence[CaseReward]
    is_free: bool = False


@dataclass(slots=True)
class InventoryItem:
    item_id: str
    user_id: str
    reward: RewardItem
    price: int
    is_sold: bool = False
    sold_price: int | None = None
    sold_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CaseOpeningResult:
    """Outcome of one case opening; ``rewards`` is the roulette strip."""

    success: bool
    rewards: tuple[RewardItem, ...]
    winner_index: int
    new_balance: int | None
    case_id: str = ""
    session_id: str | None = None
    error: str | None = None

    @property
    def reward(self) -> RewardItem:
        return self.rewards[self.winner_index]


@dataclass(frozen=True, slots=True)
class SaleReceipt:
    item_id: str
    new_balance: int | None
    message: str | None = None


@dataclass(slots=True)
class SaleLine:
    item_id: str
    captured_price: int


class SagaStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ABORTED = "aborted"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    IN_DOUBT = "in_doubt"


@dataclass(slots=True)
class BulkSaleTransaction:
    user_id: str
    items: tuple[SaleLine, ...] = ()
    applied_items: list[SaleLine] = field(default_factory=list)
    committed: bool = False
    status: SagaStatus = SagaStatus.PENDING
    new_balance: int | None = None
    error: str | None = None
    failed_reverts: list[str] = field(default_factory=list)
    failure_kind: ErrorKind | None = None

    @property
    def total_value(self) -> int:
        return sum(line.captured_price for line in self.items)

    @property
    def item_count(self) -> int:
        return len(self.items)
