"""Append-only audit trail with frequency-based risk classification."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from ..config import RiskConfig
from ..storage.base import AuditEntry, AuditStore, RiskLevel
from .clock import Clock, system_clock, to_datetime
from .rate_limit import SlidingWindowLimiter, action_key

logger = logging.getLogger(__name__)


class RiskClassifier:
    """Derive a risk level from how often the limiter saw the action, denied attempts included."""

    def __init__(self, limiter: SlidingWindowLimiter, config: RiskConfig | None = None) -> None:
        self._limiter = limiter
        self._config = config or RiskConfig()

    def frequency(self, user_id: str, action: str) -> int:
        return self._limiter.attempts(action_key(user_id, action), self._config.window_ms)

    def classify(self, user_id: str, action: str) -> RiskLevel:
        threshold = self._config.high_thresholds.get(action)
        if not threshold:
            return RiskLevel.LOW
        observed = self.frequency(user_id, action)
        if observed > threshold:
            return RiskLevel.HIGH
        if observed > threshold * self._config.medium_ratio:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


class AuditTrail:
    def __init__(
        self,
        store: AuditStore,
        classifier: RiskClassifier,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._clock = clock or system_clock

    async def record(
        self,
        user_id: str,
        action: str,
        details: Mapping[str, Any] | None = None,
        success: bool = True,
        risk_level: RiskLevel | None = None,
    ) -> AuditEntry:
        classified = self._classifier.classify(user_id, action)
        if risk_level is None or _rank(classified) > _rank(risk_level):
            risk_level = classified
        entry = AuditEntry(
            user_id=user_id,
            action=action,
            details=MappingProxyType(dict(details or {})),
            success=success,
            risk_level=risk_level,
            timestamp=to_datetime(self._clock()),
        )
        await self._store.add_entry(entry)
        if risk_level is RiskLevel.HIGH:
            logger.warning(
                "High-risk audit entry for %s: %s success=%s details=%s",
                user_id,
                action,
                success,
                dict(entry.details),
            )
        else:
            logger.debug("Audit %s %s success=%s risk=%s", user_id, action, success, risk_level.value)
        return entry

    async def entries(self, user_id: str | None = None, limit: int = 100) -> Sequence[AuditEntry]:
        return await self._store.entries(user_id, limit)


_RANKS = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


def _rank(level: RiskLevel) -> int:
    return _RANKS[level]
