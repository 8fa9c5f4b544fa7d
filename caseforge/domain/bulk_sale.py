"""Sell-all as a compensating saga.

The ledger exposes no batch operation, so a bulk sale is a sequence of
independent calls: snapshot the unsold items with their prices, mark each one
sold, credit the aggregate once, and revert the item marks when the ledger
refuses the credit. A credit lost in transport is left for reconciliation.
The sequence is not atomic across steps.
"""

from __future__ import annotations

import logging

from ..config import SagaConfig
from ..ledger.base import Ledger
from ..ledger.transport import ledger_call
from .events import RECONCILIATION_REQUIRED, EventBus
from .exceptions import TransportFailure
from .results import ErrorKind
from .rewards import BulkSaleTransaction, SagaStatus, SaleLine

logger = logging.getLogger(__name__)


class BulkSaleSaga:
    def __init__(
        self,
        ledger: Ledger,
        event_bus: EventBus,
        *,
        config: SagaConfig | None = None,
        rpc_timeout: float | None = 15.0,
    ) -> None:
        self._ledger = ledger
        self._events = event_bus
        self._config = config or SagaConfig()
        self._timeout = rpc_timeout

    async def snapshot(self, user_id: str) -> BulkSaleTransaction:
        """Capture every unsold item with the price it will be sold at."""
        items = await ledger_call(
            "fetch_unsold_items",
            self._ledger.fetch_unsold_items,
            user_id,
            timeout=self._timeout,
        )
        lines = tuple(SaleLine(item_id=item.item_id, captured_price=item.price) for item in items)
        return BulkSaleTransaction(user_id=user_id, items=lines)

    async def run(self, user_id: str) -> BulkSaleTransaction:
        """Execute the saga. Only the snapshot step raises; later failures are
        reported through the transaction status."""
        tx = await self.snapshot(user_id)
        if not tx.items:
            tx.committed = True
            tx.status = SagaStatus.COMMITTED
            logger.info("Bulk sale for %s: nothing to sell.", user_id)
            return tx

        logger.info(
            "Bulk sale for %s: %s item(s) worth %s.", user_id, tx.item_count, tx.total_value
        )
        if not await self._commit_items(tx):
            tx.status = SagaStatus.ABORTED
            if self._config.compensate_on_commit_failure and tx.applied_items:
                await self._compensate(tx)
            elif tx.applied_items:
                logger.warning(
                    "Bulk sale for %s aborted with %s item(s) already marked sold.",
                    user_id,
                    len(tx.applied_items),
                )
                await self._events.publish(
                    RECONCILIATION_REQUIRED,
                    {
                        "user_id": user_id,
                        "status": tx.status.value,
                        "item_ids": [line.item_id for line in tx.applied_items],
                    },
                )
            return tx

        if await self._credit(tx):
            tx.committed = True
            tx.status = SagaStatus.COMMITTED
            logger.info("Bulk sale for %s committed; new balance %s.", user_id, tx.new_balance)
            return tx

        if tx.failure_kind is ErrorKind.TRANSPORT:
            # The credit may have landed, so nothing is reverted.
            tx.status = SagaStatus.IN_DOUBT
            logger.error(
                "Bulk sale credit for %s has unknown outcome; %s item(s) left sold: %s",
                user_id,
                len(tx.applied_items),
                tx.error,
            )
            await self._events.publish(
                RECONCILIATION_REQUIRED,
                {
                    "user_id": user_id,
                    "status": tx.status.value,
                    "item_ids": [line.item_id for line in tx.applied_items],
                    "credit": tx.total_value,
                },
            )
            return tx

        await self._compensate(tx)
        return tx

    async def _commit_items(self, tx: BulkSaleTransaction) -> bool:
        for line in tx.items:
            try:
                response = await ledger_call(
                    "mark_item_sold",
                    self._ledger.mark_item_sold,
                    line.item_id,
                    tx.user_id,
                    line.captured_price,
                    timeout=self._timeout,
                )
            except TransportFailure as exc:
                tx.error = str(exc)
                tx.failure_kind = ErrorKind.TRANSPORT
                return False
            if not response.success:
                tx.error = response.error or f"Could not sell item {line.item_id}"
                tx.failure_kind = ErrorKind.REMOTE_REJECTION
                logger.warning(
                    "Bulk sale for %s stopped at item %s: %s", tx.user_id, line.item_id, tx.error
                )
                return False
            tx.applied_items.append(line)
        return True

    async def _credit(self, tx: BulkSaleTransaction) -> bool:
        try:
            response = await ledger_call(
                "adjust_balance",
                self._ledger.adjust_balance,
                tx.user_id,
                tx.total_value,
                self._config.credit_operation_type,
                timeout=self._timeout,
            )
        except TransportFailure as exc:
            tx.error = str(exc)
            tx.failure_kind = ErrorKind.TRANSPORT
            return False
        if not response.success:
            tx.error = response.error or "Balance credit failed"
            tx.failure_kind = ErrorKind.REMOTE_REJECTION
            logger.warning("Bulk sale credit for %s rejected: %s", tx.user_id, tx.error)
            return False
        tx.new_balance = response.new_balance
        return True

    async def _compensate(self, tx: BulkSaleTransaction) -> None:
        """Revert applied items in reverse order, continuing past failures."""
        for line in reversed(list(tx.applied_items)):
            try:
                response = await ledger_call(
                    "mark_item_unsold",
                    self._ledger.mark_item_unsold,
                    line.item_id,
                    tx.user_id,
                    timeout=self._timeout,
                )
                reverted = response.success
            except TransportFailure:
                reverted = False
            if reverted:
                tx.applied_items.remove(line)
            else:
                tx.failed_reverts.append(line.item_id)

        if not tx.failed_reverts:
            tx.status = SagaStatus.COMPENSATED
            logger.info("Bulk sale for %s compensated; all items restored.", tx.user_id)
            return

        tx.status = SagaStatus.COMPENSATION_FAILED
        logger.error(
            "Bulk sale for %s left %s item(s) sold without credit: %s",
            tx.user_id,
            len(tx.failed_reverts),
            ", ".join(tx.failed_reverts),
        )
        await self._events.publish(
            RECONCILIATION_REQUIRED,
            {
                "user_id": tx.user_id,
                "status": tx.status.value,
                "item_ids": list(tx.failed_reverts),
            },
        )
