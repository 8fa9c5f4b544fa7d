"""Call contracts of the remote ledger that owns balances and inventory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..domain.rewards import InventoryItem, RewardItem


@dataclass(frozen=True, slots=True)
class OpenCaseResponse:
    success: bool
    reward: RewardItem | None = None
    new_balance: int | None = None
    roulette_items: tuple[RewardItem, ...] = ()
    winner_index: int | None = None
    inventory_id: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class SellItemResponse:
    success: bool
    new_balance: int | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class BalanceResponse:
    success: bool
    new_balance: int | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CommitResponse:
    success: bool
    error: str | None = None


class Ledger(Protocol):
    """Source of truth for balances and inventory.

    Adapters raise :class:`caseforge.domain.exceptions.TransportFailure` when
    the ledger cannot be reached; business refusals come back as
    ``success=False`` responses.
    """

    async def open_case(
        self,
        user_id: str,
        case_id: str,
        *,
        skin_id: str | None = None,
        coin_reward_id: str | None = None,
        is_free: bool = False,
        ad_watched: bool = False,
        session_id: str | None = None,
    ) -> OpenCaseResponse:
        ...

    async def sell_item(self, inventory_item_id: str, user_id: str) -> SellItemResponse:
        ...

    async def adjust_balance(self, user_id: str, delta: int, operation_type: str) -> BalanceResponse:
        ...

    async def mark_item_sold(self, item_id: str, user_id: str, sold_price: int) -> CommitResponse:
        ...

    async def mark_item_unsold(self, item_id: str, user_id: str) -> CommitResponse:
        ...

    async def fetch_balance(self, user_id: str) -> int:
        ...

    async def fetch_unsold_items(self, user_id: str) -> Sequence[InventoryItem]:
        ...
