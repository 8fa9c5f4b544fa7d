"""Replay bursts of user triggers through the coordinator."""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from dataclasses import dataclass, field
from random import Random
from typing import Sequence

from ..app import CaseForgeApp
from ..config import CaseForgeConfig
from ..domain.clock import ManualClock
from ..domain.coordinator import OpenCaseRequest
from ..domain.results import Err
from ..domain.rewards import CaseDefinition, CaseReward, Rarity, RewardItem, RewardKind
from ..ledger.memory import InMemoryLedger
from ..storage.base import AuditEntry


@dataclass(slots=True)
class BurstReport:
    gestures: int
    triggers: int
    openings: int = 0
    outcomes: Counter = field(default_factory=Counter)
    starting_balance: int = 0
    final_balance: int = 0
    audit: Sequence[AuditEntry] = ()

    @property
    def spent(self) -> int:
        return self.starting_balance - self.final_balance


class BurstSimulator:
    """Drive a simulated user against an in-memory ledger on a virtual clock.

    Every gesture fires ``taps`` concurrent submits on one case-opening state
    machine, then the clock moves on by ``interval_ms``.
    """

    def __init__(
        self,
        config: CaseForgeConfig | None = None,
        *,
        rng: Random | None = None,
        case_price: int = 100,
    ) -> None:
        self._rng = rng or Random()
        self.clock = ManualClock()
        self.ledger = InMemoryLedger(rng=self._rng)
        self.app = CaseForgeApp(config or CaseForgeConfig(), ledger=self.ledger, clock=self.clock)
        self.case = _demo_case(self._rng, case_price)
        self.ledger.register_case(self.case)
        self.user_id = _uuid4(self._rng)

    async def run(
        self,
        *,
        gestures: int = 10,
        taps: int = 3,
        interval_ms: float = 1_000,
        balance: int = 1_000,
    ) -> BurstReport:
        self.ledger.seed_balance(self.user_id, balance)
        report = BurstReport(gestures=gestures, triggers=gestures * taps, starting_balance=balance)
        request = OpenCaseRequest(user_id=self.user_id, case_id=self.case.case_id)

        for _ in range(gestures):
            opening = self.app.new_case_opening(request)
            results = await asyncio.gather(*(opening.submit() for _ in range(taps)))
            for result in results:
                if isinstance(result, Err):
                    report.outcomes[result.kind.value] += 1
                else:
                    report.outcomes["success"] += 1
                    report.openings += 1
            if opening.result is not None:
                await opening.finish_animation()
            self.clock.advance(interval_ms)

        report.final_balance = self.ledger.balance(self.user_id)
        report.audit = await self.app.audit.entries(self.user_id, limit=report.triggers)
        return report


def _uuid4(rng: Random) -> str:
    # Seeded so that runs are reproducible.
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def _demo_case(rng: Random, price: int) -> CaseDefinition:
    rarities = [Rarity.MIL_SPEC, Rarity.RESTRICTED, Rarity.CLASSIFIED, Rarity.COVERT]
    weights = [0.6, 0.25, 0.1, 0.05]
    rewards = [
        CaseReward(
            item=RewardItem(
                id=_uuid4(rng),
                display_name=f"Demo {rarity.value}",
                rarity=rarity,
                monetary_value=int(price * multiplier),
            ),
            weight=weight,
        )
        for rarity, weight, multiplier in zip(rarities, weights, (0.3, 0.8, 2.5, 8.0))
    ]
    rewards.append(
        CaseReward(
            item=RewardItem(
                id=_uuid4(rng),
                display_name=f"{price // 2} coins",
                monetary_value=price // 2,
                kind=RewardKind.COIN_GRANT,
            ),
            weight=0.2,
        )
    )
    return CaseDefinition(
        case_id=_uuid4(rng), name="Demo Case", price=price, rewards=tuple(rewards)
    )
