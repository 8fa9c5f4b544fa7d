"""Example: run caseforge behind an aiogram bot with the in-memory ledger."""

from __future__ import annotations

import asyncio
import logging

from caseforge import CaseForgeApp, CaseForgeConfig, InMemoryLedger
from caseforge.domain.rewards import CaseDefinition, CaseReward, Rarity, RewardItem, RewardKind

STARTER_CASE_ID = "5f0c2a3e-8d1b-4c6a-9e2f-7b3d1a4c5e6f"


def register(ledger: InMemoryLedger) -> None:
    """Register a starter case."""
    ledger.register_case(
        CaseDefinition(
            case_id=STARTER_CASE_ID,
            name="Starter Case",
            price=100,
            rewards=(
                CaseReward(
                    RewardItem(
                        id="0a7e4c1b-2d3f-4a5b-8c6d-9e0f1a2b3c4d",
                        display_name="P250 | Sand Dune",
                        rarity=Rarity.CONSUMER,
                        monetary_value=20,
                    ),
                    weight=0.7,
                ),
                CaseReward(
                    RewardItem(
                        id="1b8f5d2c-3e4a-4b6c-9d7e-0f1a2b3c4d5e",
                        display_name="AK-47 | Redline",
                        rarity=Rarity.CLASSIFIED,
                        monetary_value=450,
                    ),
                    weight=0.05,
                ),
                CaseReward(
                    RewardItem(
                        id="2c9a6e3d-4f5b-4c7d-8e8f-1a2b3c4d5e6f",
                        display_name="50 coins",
                        monetary_value=50,
                        kind=RewardKind.COIN_GRANT,
                    ),
                    weight=0.25,
                ),
            ),
        )
    )


async def run_bot() -> None:
    from aiogram import Bot, Dispatcher
    from caseforge.telegram import build_router

    logging.basicConfig(level=logging.INFO)
    ledger = InMemoryLedger(default_balance=1_000)
    register(ledger)
    app = CaseForgeApp(CaseForgeConfig.from_env(), ledger=ledger)
    await app.init_backend()

    bot = Bot(app.config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_router(app))
    try:
        await dp.start_polling(bot)
    finally:
        await app.close()


if __name__ == "__main__":
    asyncio.run(run_bot())
