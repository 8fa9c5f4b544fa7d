"""Local, display-only view of a user's balance and inventory."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from ..config import RetryConfig
from ..ledger.base import Ledger
from ..ledger.transport import ledger_call
from .clock import Clock, system_clock, to_datetime
from .events import PROJECTION_INVALIDATED, PROJECTION_REFRESHED, EventBus
from .exceptions import TransportFailure
from .rewards import InventoryItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProjectionSnapshot:
    user_id: str
    balance: int
    items: tuple[InventoryItem, ...]
    refreshed_at: datetime
    stale: bool = False

    @property
    def inventory_value(self) -> int:
        return sum(item.price for item in self.items)


class LedgerProjection:
    """Cache of ledger reads. Invalidated and refetched, never incremented."""

    def __init__(
        self,
        ledger: Ledger,
        event_bus: EventBus,
        *,
        retry: RetryConfig | None = None,
        rpc_timeout: float | None = 15.0,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._events = event_bus
        self._retry = retry or RetryConfig()
        self._timeout = rpc_timeout
        self._clock = clock or system_clock
        self._sleep = sleep
        self._snapshots: dict[str, ProjectionSnapshot] = {}

    def get(self, user_id: str) -> ProjectionSnapshot | None:
        return self._snapshots.get(user_id)

    async def invalidate(self, user_id: str, *, reason: str = "") -> None:
        snapshot = self._snapshots.get(user_id)
        if snapshot is not None and not snapshot.stale:
            self._snapshots[user_id] = ProjectionSnapshot(
                user_id=snapshot.user_id,
                balance=snapshot.balance,
                items=snapshot.items,
                refreshed_at=snapshot.refreshed_at,
                stale=True,
            )
        await self._events.publish(PROJECTION_INVALIDATED, {"user_id": user_id, "reason": reason})

    async def refresh(self, user_id: str) -> ProjectionSnapshot:
        """Refetch from the ledger, retrying transport failures with backoff."""
        attempt = 0
        while True:
            try:
                balance = await ledger_call(
                    "fetch_balance", self._ledger.fetch_balance, user_id, timeout=self._timeout
                )
                items = tuple(
                    await ledger_call(
                        "fetch_unsold_items",
                        self._ledger.fetch_unsold_items,
                        user_id,
                        timeout=self._timeout,
                    )
                )
                break
            except TransportFailure as exc:
                attempt += 1
                if attempt >= self._retry.max_attempts:
                    logger.warning(
                        "Projection refresh for %s exceeded retry limit (%s attempts): %s",
                        user_id,
                        attempt,
                        exc,
                    )
                    raise
                delay_ms = min(
                    self._retry.max_delay_ms,
                    self._retry.base_delay_ms * (2 ** (attempt - 1)),
                )
                logger.info(
                    "Projection refresh for %s failed; retrying in %sms (attempt %s/%s).",
                    user_id,
                    delay_ms,
                    attempt,
                    self._retry.max_attempts,
                )
                await self._sleep(delay_ms / 1000.0)

        snapshot = ProjectionSnapshot(
            user_id=user_id,
            balance=balance,
            items=items,
            refreshed_at=to_datetime(self._clock()),
        )
        self._snapshots[user_id] = snapshot
        await self._events.publish(
            PROJECTION_REFRESHED,
            {"user_id": user_id, "balance": balance, "items": len(items)},
        )
        return snapshot

    async def invalidate_and_refresh(self, user_id: str, *, reason: str = "") -> ProjectionSnapshot | None:
        """Best effort: a failed refresh leaves the snapshot marked stale."""
        await self.invalidate(user_id, reason=reason)
        try:
            return await self.refresh(user_id)
        except TransportFailure:
            return None
