"""Telegram integration helpers."""

from .keyboards import inventory_keyboard, opening_keyboard
from .router import (
    build_router,
    format_balance,
    format_bulk_sale,
    format_error,
    format_opening_result,
    format_sale_receipt,
    ledger_user_id,
)

__all__ = [
    "build_router",
    "format_balance",
    "format_bulk_sale",
    "format_error",
    "format_opening_result",
    "format_sale_receipt",
    "inventory_keyboard",
    "ledger_user_id",
    "opening_keyboard",
]
