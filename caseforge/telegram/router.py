"""Factory helpers to wire caseforge actions into aiogram."""

from __future__ import annotations

import uuid
from typing import Iterable

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from ..app import CaseForgeApp
from ..domain.coordinator import OpenCaseRequest
from ..domain.exceptions import TransportFailure
from ..domain.projection import ProjectionSnapshot
from ..domain.results import Err, ErrorKind
from ..domain.rewards import BulkSaleTransaction, CaseOpeningResult, InventoryItem, RewardKind, SaleReceipt
from .keyboards import inventory_keyboard, opening_keyboard

TELEGRAM_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://t.me/caseforge")

_KIND_ICONS = {
    ErrorKind.VALIDATION: "⚠️",
    ErrorKind.THROTTLED: "⏳",
    ErrorKind.DUPLICATE: "🔁",
    ErrorKind.REMOTE_REJECTION: "❌",
    ErrorKind.TRANSPORT: "📡",
    ErrorKind.COMPENSATION: "🚨",
}


def build_router(app: CaseForgeApp) -> Router:
    router = Router()
    coordinator = app.coordinator

    @router.message(Command("start"))
    async def handle_start(message: Message) -> None:
        await message.answer(render_help_message())

    @router.message(Command("help"))
    async def handle_help(message: Message) -> None:
        await message.answer(render_help_message())

    @router.message(Command("open"))
    async def handle_open(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        case_id = extract_argument(message.text)
        if not case_id:
            await message.answer("Usage: /open <case id>")
            return
        opening = app.new_case_opening(
            OpenCaseRequest(user_id=ledger_user_id(user.id), case_id=case_id)
        )
        result = await opening.submit()
        if isinstance(result, Err):
            await message.answer(format_error(result))
            return
        await message.answer(
            format_opening_result(result.value),
            reply_markup=opening_keyboard(case_id),
        )
        await opening.finish_animation()

    @router.callback_query(lambda c: c.data and c.data.startswith("caseforge:open:"))
    async def handle_open_again(callback: CallbackQuery) -> None:
        user = callback.from_user
        if not user or not callback.data:
            return
        case_id = callback.data.split(":")[-1]
        opening = app.new_case_opening(
            OpenCaseRequest(user_id=ledger_user_id(user.id), case_id=case_id)
        )
        result = await opening.submit()
        if isinstance(result, Err):
            await callback.answer(format_error(result), show_alert=True)
            return
        await callback.message.answer(
            format_opening_result(result.value),
            reply_markup=opening_keyboard(case_id),
        )
        await opening.finish_animation()
        await callback.answer()

    @router.message(Command("sell"))
    async def handle_sell(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        item_id = extract_argument(message.text)
        if not item_id:
            await message.answer("Usage: /sell <item id>")
            return
        result = await coordinator.sell_item(ledger_user_id(user.id), item_id)
        if isinstance(result, Err):
            await message.answer(format_error(result))
            return
        await message.answer(format_sale_receipt(result.value))

    @router.callback_query(lambda c: c.data and c.data.startswith("caseforge:sell:"))
    async def handle_sell_callback(callback: CallbackQuery) -> None:
        user = callback.from_user
        if not user or not callback.data:
            return
        item_id = callback.data.split(":")[-1]
        result = await coordinator.sell_item(ledger_user_id(user.id), item_id)
        if isinstance(result, Err):
            await callback.answer(format_error(result), show_alert=True)
            return
        await callback.answer(format_sale_receipt(result.value))

    @router.message(Command("sellall"))
    async def handle_sell_all(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        result = await coordinator.sell_all(ledger_user_id(user.id))
        if isinstance(result, Err):
            await message.answer(format_error(result))
            return
        await message.answer(format_bulk_sale(result.value))

    @router.message(Command("balance"))
    async def handle_balance(message: Message) -> None:
        user = message.from_user
        if not user:
            return
        user_id = ledger_user_id(user.id)
        try:
            snapshot = await app.projection.refresh(user_id)
        except TransportFailure:
            snapshot = app.projection.get(user_id)
        if snapshot is None:
            await message.answer("Balance is unavailable right now. Try again later.")
            return
        await message.answer(
            format_balance(snapshot),
            reply_markup=inventory_keyboard(snapshot.items) if snapshot.items else None,
        )

    return router


def ledger_user_id(telegram_user_id: int) -> str:
    """Stable ledger identifier for a Telegram account."""
    return str(uuid.uuid5(TELEGRAM_NAMESPACE, str(telegram_user_id)))


def extract_argument(text: str | None) -> str | None:
    if text and len(parts := text.strip().split()) > 1:
        return parts[1]
    return None


def render_help_message() -> str:
    return "\n".join(
        [
            "Commands:",
            "• /open <case id> — open a case",
            "• /sell <item id> — sell one item",
            "• /sellall — sell every unsold item",
            "• /balance — show balance and inventory",
            "• /help — show this message",
        ]
    )


def format_opening_result(result: CaseOpeningResult) -> str:
    reward = result.reward
    lines = [f"🎰 Case opened! ({len(result.rewards)} items on the strip)"]
    if reward.kind is RewardKind.COIN_GRANT:
        lines.append(f"💰 {reward.display_name}: +{reward.monetary_value} coins")
    else:
        lines.append(f"✨ {reward.display_name} [{reward.rarity.value}] worth {reward.monetary_value}")
    if result.new_balance is not None:
        lines.append(f"Balance: {result.new_balance}")
    return "\n".join(lines)


def format_sale_receipt(receipt: SaleReceipt) -> str:
    text = receipt.message or "Item sold"
    if receipt.new_balance is not None:
        text = f"{text}. Balance: {receipt.new_balance}"
    return text


def format_bulk_sale(tx: BulkSaleTransaction) -> str:
    if not tx.items:
        return "Nothing to sell."
    lines = [f"💸 Sold {tx.item_count} item(s) for {tx.total_value} coins."]
    if tx.new_balance is not None:
        lines.append(f"Balance: {tx.new_balance}")
    return "\n".join(lines)


def format_balance(snapshot: ProjectionSnapshot) -> str:
    lines = [f"💰 Balance: {snapshot.balance}"]
    if snapshot.stale:
        lines.append("(may be out of date)")
    lines.extend(format_inventory(snapshot.items))
    return "\n".join(lines)


def format_inventory(items: Iterable[InventoryItem]) -> list[str]:
    items = list(items)
    if not items:
        return ["", "Inventory is empty."]
    lines = ["", f"🗃️ Inventory ({sum(item.price for item in items)} coins):"]
    for item in items:
        lines.append(f"• {item.reward.display_name} [{item.reward.rarity.value}]: {item.price}")
    return lines


def format_error(error: Err) -> str:
    icon = _KIND_ICONS.get(error.kind, "❌")
    return f"{icon} {error.message}"
