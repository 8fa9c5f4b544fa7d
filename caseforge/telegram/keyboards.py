"""Keyboard helpers for caseforge bots."""

from __future__ import annotations

from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..domain.rewards import InventoryItem

MAX_ITEM_BUTTONS = 10


def opening_keyboard(case_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🎰 Open again", callback_data=f"caseforge:open:{case_id}")],
        ]
    )


def inventory_keyboard(items: Sequence[InventoryItem]) -> InlineKeyboardMarkup:
    # Telegram caps callback_data at 64 bytes; a UUID plus prefix fits.
    rows = [
        [
            InlineKeyboardButton(
                text=f"Sell {item.reward.display_name} ({item.price})",
                callback_data=f"caseforge:sell:{item.item_id}",
            )
        ]
        for item in items[:MAX_ITEM_BUTTONS]
    ]
    return InlineKeyboardMarkup(inline_keyboard=rows)
