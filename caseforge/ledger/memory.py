"""In-process reference ledger.

Useful for tests, local simulation and as the executable description of what
a real ledger adapter is expected to answer.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from random import Random
from typing import Sequence

from ..domain.rewards import CaseDefinition, CaseReward, InventoryItem, RewardItem, RewardKind
from .base import BalanceResponse, CommitResponse, Ledger, OpenCaseResponse, SellItemResponse


class InMemoryLedger(Ledger):
    def __init__(
        self,
        *,
        rng: Random | None = None,
        roulette_length: int = 40,
        winner_offset: int = 5,
        default_balance: int = 0,
    ) -> None:
        if roulette_length <= winner_offset:
            raise ValueError("roulette_length must exceed winner_offset")
        self._rng = rng or Random()
        self._roulette_length = roulette_length
        self._winner_offset = winner_offset
        self._default_balance = default_balance
        self._balances: dict[str, int] = {}
        self._cases: dict[str, CaseDefinition] = {}
        self._inventory: dict[str, InventoryItem] = {}
        self._sessions: dict[str, OpenCaseResponse] = {}
        self.journal: list[tuple[str, int, str]] = []

    def register_case(self, case: CaseDefinition) -> None:
        if case.case_id in self._cases:
            raise ValueError(f"Case {case.case_id} already registered")
        self._cases[case.case_id] = case

    def seed_balance(self, user_id: str, amount: int) -> None:
        self._balances[user_id] = amount

    def grant_item(self, user_id: str, reward: RewardItem, *, price: int | None = None) -> InventoryItem:
        item = InventoryItem(
            item_id=str(uuid.uuid4()),
            user_id=user_id,
            reward=reward,
            price=reward.monetary_value if price is None else price,
        )
        self._inventory[item.item_id] = item
        return item

    def set_price(self, item_id: str, price: int) -> None:
        self._inventory[item_id].price = price

    def balance(self, user_id: str) -> int:
        return self._balances.get(user_id, self._default_balance)

    def items(self, user_id: str, *, include_sold: bool = False) -> list[InventoryItem]:
        return [
            item
            for item in self._inventory.values()
            if item.user_id == user_id and (include_sold or not item.is_sold)
        ]

    def get_item(self, item_id: str) -> InventoryItem | None:
        return self._inventory.get(item_id)

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
        if session_id and session_id in self._sessions:
            return self._sessions[session_id]

        case = self._cases.get(case_id)
        if case is None:
            return OpenCaseResponse(success=False, error=f"Case {case_id} not found")
        if is_free and not case.is_free:
            return OpenCaseResponse(success=False, error="Case is not free")
        if is_free and not ad_watched:
            return OpenCaseResponse(success=False, error="Ad view required for free case")

        price = 0 if is_free else case.price
        balance = self.balance(user_id)
        if balance < price:
            return OpenCaseResponse(success=False, error="Insufficient funds")

        pool = [entry for entry in case.rewards if not entry.never_drop]
        if not pool:
            return OpenCaseResponse(success=False, error=f"Case {case_id} has no rewards")

        preselected = skin_id or coin_reward_id
        if preselected:
            matches = [entry.item for entry in case.rewards if entry.item.id == preselected]
            if not matches:
                return OpenCaseResponse(success=False, error="Reward does not belong to case")
            reward = matches[0]
        else:
            reward = self._draw(pool)

        balance -= price
        inventory_id: str | None = None
        if reward.kind is RewardKind.SKIN:
            inventory_id = self.grant_item(user_id, reward).item_id
        else:
            balance += reward.monetary_value
        self._balances[user_id] = balance
        self.journal.append((user_id, reward.monetary_value - price, "case_open"))

        strip = [self._draw(pool) for _ in range(self._roulette_length)]
        winner_index = self._roulette_length - self._winner_offset
        strip[winner_index] = reward

        response = OpenCaseResponse(
            success=True,
            reward=reward,
            new_balance=balance,
            roulette_items=tuple(strip),
            winner_index=winner_index,
            inventory_id=inventory_id,
        )
        if session_id:
            self._sessions[session_id] = response
        return response

    async def sell_item(self, inventory_item_id: str, user_id: str) -> SellItemResponse:
        item = self._inventory.get(inventory_item_id)
        if item is None or item.user_id != user_id:
            return SellItemResponse(success=False, message="Item not found")
        if item.is_sold:
            return SellItemResponse(success=False, message="Item already sold")
        self._mark_sold(item, item.price)
        balance = self.balance(user_id) + item.price
        self._balances[user_id] = balance
        self.journal.append((user_id, item.price, "skin_sale"))
        return SellItemResponse(success=True, new_balance=balance, message=f"Sold for {item.price} coins")

    async def adjust_balance(self, user_id: str, delta: int, operation_type: str) -> BalanceResponse:
        balance = self.balance(user_id) + delta
        if balance < 0:
            return BalanceResponse(success=False, error="Insufficient funds")
        self._balances[user_id] = balance
        self.journal.append((user_id, delta, operation_type))
        return BalanceResponse(success=True, new_balance=balance)

    async def mark_item_sold(self, item_id: str, user_id: str, sold_price: int) -> CommitResponse:
        item = self._inventory.get(item_id)
        if item is None or item.user_id != user_id:
            return CommitResponse(success=False, error="Item not found")
        if item.is_sold:
            return CommitResponse(success=False, error="Item already sold")
        self._mark_sold(item, sold_price)
        return CommitResponse(success=True)

    async def mark_item_unsold(self, item_id: str, user_id: str) -> CommitResponse:
        item = self._inventory.get(item_id)
        if item is None or item.user_id != user_id:
            return CommitResponse(success=False, error="Item not found")
        item.is_sold = False
        item.sold_price = None
        item.sold_at = None
        return CommitResponse(success=True)

    async def fetch_balance(self, user_id: str) -> int:
        return self.balance(user_id)

    async def fetch_unsold_items(self, user_id: str) -> Sequence[InventoryItem]:
        # Copies, as a remote ledger would serialize them.
        return [replace(item) for item in self.items(user_id)]

    def _mark_sold(self, item: InventoryItem, price: int) -> None:
        item.is_sold = True
        item.sold_price = price
        item.sold_at = datetime.now(timezone.utc)

    def _draw(self, pool: Sequence[CaseReward]) -> RewardItem:
        return pool[self._weighted_index([entry.weight for entry in pool])].item

    def _weighted_index(self, weights: Sequence[float]) -> int:
        total = sum(weight for weight in weights if weight > 0)
        if total <= 0:
            return int(self._rng.random() * len(weights))
        threshold = self._rng.random() * total
        cumulative = 0.0
        for idx, weight in enumerate(weights):
            if weight <= 0:
                continue
            cumulative += weight
            if threshold <= cumulative:
                return idx
        return len(weights) - 1
