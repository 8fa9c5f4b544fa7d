"""Admission and dispatch of monetary actions.

Every action goes through the same pipeline: validate the request, drop
re-entrant triggers of the same gesture, apply the sliding-window limit and
the lockout, take the gesture latch, call the ledger once, then refresh the
projection and append an audit entry. Public methods return ``Ok``/``Err``
values instead of raising domain errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, TypeVar

from ..config import CaseForgeConfig
from ..ledger.base import Ledger, OpenCaseResponse
from ..ledger.transport import ledger_call
from ..storage.base import RiskLevel
from .audit import AuditTrail
from .bulk_sale import BulkSaleSaga
from .clock import Clock, system_clock
from .events import ACTION_COMPLETED, EventBus
from .exceptions import (
    CaseForgeError,
    CompensationFailure,
    DuplicateAttempt,
    RemoteRejection,
    ThrottledError,
    TransportFailure,
    ValidationError,
)
from .idempotency import IdempotencyGuard, LatchState, OneShotLatch
from .projection import LedgerProjection
from .rate_limit import EscalatingLockout, SlidingWindowLimiter, action_key
from .results import Err, ErrorKind, Ok, Result
from .rewards import (
    ActionType,
    BulkSaleTransaction,
    CaseOpeningResult,
    RewardItem,
    SagaStatus,
    SaleReceipt,
)
from .validation import validate_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class OpenCaseRequest:
    user_id: str
    case_id: str
    skin_id: str | None = None
    coin_reward_id: str | None = None
    is_free: bool = False
    ad_watched: bool = False


class ActionCoordinator:
    def __init__(
        self,
        *,
        ledger: Ledger,
        limiter: SlidingWindowLimiter,
        lockout: EscalatingLockout,
        guard: IdempotencyGuard,
        audit: AuditTrail,
        projection: LedgerProjection,
        saga: BulkSaleSaga,
        event_bus: EventBus,
        config: CaseForgeConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._ledger = ledger
        self._limiter = limiter
        self._lockout = lockout
        self._guard = guard
        self._audit = audit
        self._projection = projection
        self._saga = saga
        self._events = event_bus
        self._config = config or CaseForgeConfig()
        self._clock = clock or system_clock

    async def open_case(
        self, request: OpenCaseRequest, *, latch: OneShotLatch | None = None
    ) -> Result[CaseOpeningResult]:
        details: dict[str, Any] = {"case_id": request.case_id, "is_free": request.is_free}
        return await self._execute(
            ActionType.OPEN_CASE,
            request.user_id,
            details,
            self._open_case(request, latch or OneShotLatch(), details),
        )

    async def sell_item(
        self, user_id: str, item_id: str, *, latch: OneShotLatch | None = None
    ) -> Result[SaleReceipt]:
        details: dict[str, Any] = {"item_id": item_id}
        return await self._execute(
            ActionType.SELL_ITEM,
            user_id,
            details,
            self._sell_item(user_id, item_id, latch or OneShotLatch(), details),
        )

    async def sell_all(
        self, user_id: str, *, latch: OneShotLatch | None = None
    ) -> Result[BulkSaleTransaction]:
        details: dict[str, Any] = {}
        return await self._execute(
            ActionType.SELL_ALL,
            user_id,
            details,
            self._sell_all(user_id, latch or OneShotLatch(), details),
        )

    async def _execute(
        self,
        action: ActionType,
        user_id: str,
        details: dict[str, Any],
        operation: Awaitable[T],
    ) -> Result[T]:
        try:
            value = await operation
        except CaseForgeError as exc:
            details["outcome"] = exc.kind.value
            details["error"] = str(exc)
            await self._audit.record(
                user_id, action.value, details, success=False, risk_level=_risk_for(exc)
            )
            await self._events.publish(
                ACTION_COMPLETED,
                {"user_id": user_id, "action": action.value, "success": False, "kind": exc.kind.value},
            )
            return Err.from_exception(exc)

        details["outcome"] = "success"
        await self._audit.record(user_id, action.value, details, success=True)
        await self._events.publish(
            ACTION_COMPLETED,
            {"user_id": user_id, "action": action.value, "success": True, "kind": None},
        )
        return Ok(value)

    def _reject_reentry(self, latch: OneShotLatch) -> None:
        if latch.state is LatchState.IN_FLIGHT:
            raise DuplicateAttempt("Action already in progress")
        if latch.state is LatchState.DONE:
            raise DuplicateAttempt("Action already completed")

    def _admit(self, user_id: str, action: ActionType, latch: OneShotLatch) -> None:
        """Apply limiter and lockout, then take the latch.

        No await happens between the re-entry check and ``try_acquire``, so
        the check and the acquire cannot interleave with another trigger.
        """
        self._reject_reentry(latch)

        rule = self._config.rate_limit_for(action.value)
        key = action_key(user_id, action.value)
        if not self._limiter.is_allowed(key, rule.max_requests, rule.window_ms):
            retry_after = max(0.0, self._limiter.reset_time(key) - self._clock())
            logger.warning("Rate limit hit for %s on %s.", user_id, action.value)
            raise ThrottledError(retry_after)

        decision = self._lockout.evaluate(user_id, action.value)
        if not decision.allowed:
            logger.warning(
                "Lockout denied %s on %s for %.0fms.", user_id, action.value, decision.retry_after_ms
            )
            raise ThrottledError(decision.retry_after_ms, tripped=decision.tripped)

        latch.try_acquire()

    async def _settle(self, user_id: str, reason: str) -> None:
        """Refresh the projection. The ledger outcome stands whatever happens here."""
        try:
            await self._projection.invalidate_and_refresh(user_id, reason=reason)
        except Exception:
            logger.warning(
                "Projection refresh for %s after %s failed; view left stale.",
                user_id,
                reason,
                exc_info=True,
            )

    async def _open_case(
        self, request: OpenCaseRequest, latch: OneShotLatch, details: dict[str, Any]
    ) -> CaseOpeningResult:
        user_id = validate_identifier(request.user_id, "user id")
        case_id = validate_identifier(request.case_id, "case id")
        if request.skin_id is not None:
            validate_identifier(request.skin_id, "skin id")
        if request.coin_reward_id is not None:
            validate_identifier(request.coin_reward_id, "coin reward id")
        if request.is_free and not request.ad_watched:
            raise ValidationError("Ad view required for free case")

        self._admit(user_id, ActionType.OPEN_CASE, latch)
        try:
            claim = await self._guard.begin(user_id, case_id)
        except BaseException:
            latch.release()
            raise
        details["session_id"] = claim.token.session_id
        if claim.reattached:
            latch.release()
            raise DuplicateAttempt(
                "Case opening already in progress", session_id=claim.token.session_id
            )

        logger.info("Opening case %s for %s (session %s).", case_id, user_id, claim.token.session_id)
        try:
            response = await ledger_call(
                "open_case",
                self._ledger.open_case,
                user_id,
                case_id,
                skin_id=request.skin_id,
                coin_reward_id=request.coin_reward_id,
                is_free=request.is_free,
                ad_watched=request.ad_watched,
                session_id=claim.token.session_id,
                timeout=self._config.rpc_timeout_seconds,
            )
        except TransportFailure:
            # Token stays unconsumed so a reloaded client reattaches.
            latch.release()
            await self._settle(user_id, "open_case.transport")
            raise

        await self._guard.consume(claim.token)
        reward = response.reward
        if not response.success or reward is None:
            latch.release()
            await self._settle(user_id, "open_case.rejected")
            message = response.error or "Case opening failed"
            logger.warning("Case %s rejected for %s: %s", case_id, user_id, message)
            raise RemoteRejection(message, context={"case_id": case_id})

        latch.complete()
        result = _to_opening_result(case_id, claim.token.session_id, reward, response)
        details["reward_id"] = result.reward.id
        logger.info("Case %s opened for %s: %s.", case_id, user_id, result.reward.display_name)
        await self._settle(user_id, "open_case")
        return result

    async def _sell_item(
        self, user_id: str, item_id: str, latch: OneShotLatch, details: dict[str, Any]
    ) -> SaleReceipt:
        validate_identifier(user_id, "user id")
        validate_identifier(item_id, "item id")

        self._admit(user_id, ActionType.SELL_ITEM, latch)
        logger.info("Selling item %s for %s.", item_id, user_id)
        try:
            response = await ledger_call(
                "sell_item",
                self._ledger.sell_item,
                item_id,
                user_id,
                timeout=self._config.rpc_timeout_seconds,
            )
        except TransportFailure:
            latch.release()
            await self._settle(user_id, "sell_item.transport")
            raise

        if not response.success:
            latch.release()
            await self._settle(user_id, "sell_item.rejected")
            message = response.message or "Sale failed"
            logger.warning("Sale of %s rejected for %s: %s", item_id, user_id, message)
            raise RemoteRejection(message, context={"item_id": item_id})

        latch.complete()
        details["new_balance"] = response.new_balance
        await self._settle(user_id, "sell_item")
        return SaleReceipt(item_id=item_id, new_balance=response.new_balance, message=response.message)

    async def _sell_all(
        self, user_id: str, latch: OneShotLatch, details: dict[str, Any]
    ) -> BulkSaleTransaction:
        validate_identifier(user_id, "user id")

        self._admit(user_id, ActionType.SELL_ALL, latch)
        try:
            tx = await self._saga.run(user_id)
        except TransportFailure:
            latch.release()
            raise

        details.update(
            status=tx.status.value,
            items=tx.item_count,
            total_value=tx.total_value,
        )
        await self._settle(user_id, "sell_all")

        if tx.status is SagaStatus.COMMITTED:
            latch.complete()
            return tx

        latch.release()
        context = {"status": tx.status.value, "applied_items": [line.item_id for line in tx.applied_items]}
        if tx.status is SagaStatus.COMPENSATION_FAILED:
            raise CompensationFailure(tx.failed_reverts, context=context)
        if tx.status is SagaStatus.IN_DOUBT:
            raise TransportFailure("Sale outcome unknown; it will be reconciled", context=context)
        message = tx.error or "Bulk sale failed"
        if tx.failure_kind is ErrorKind.TRANSPORT:
            raise TransportFailure(message, context=context)
        raise RemoteRejection(message, context=context)


def _to_opening_result(
    case_id: str, session_id: str, reward: RewardItem, response: OpenCaseResponse
) -> CaseOpeningResult:
    strip = tuple(response.roulette_items)
    index = response.winner_index
    if not strip or index is None or not 0 <= index < len(strip):
        logger.warning("Ledger returned no usable roulette strip for case %s.", case_id)
        strip, index = (reward,), 0
    elif strip[index] != reward:
        logger.warning("Roulette winner for case %s did not match the reward; patched.", case_id)
        strip = strip[:index] + (reward,) + strip[index + 1 :]
    return CaseOpeningResult(
        success=True,
        rewards=strip,
        winner_index=index,
        new_balance=response.new_balance,
        case_id=case_id,
        session_id=session_id,
    )


def _risk_for(exc: CaseForgeError) -> RiskLevel | None:
    if isinstance(exc, CompensationFailure):
        return RiskLevel.HIGH
    if isinstance(exc, TransportFailure) and exc.context.get("status") == SagaStatus.IN_DOUBT.value:
        return RiskLevel.HIGH
    if isinstance(exc, ThrottledError):
        return RiskLevel.HIGH if exc.tripped else RiskLevel.MEDIUM
    return None
