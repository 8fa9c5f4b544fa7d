import pytest

from caseforge.config import RiskConfig
from caseforge.domain.audit import AuditTrail, RiskClassifier
from caseforge.domain.clock import ManualClock
from caseforge.domain.rate_limit import SlidingWindowLimiter, action_key
from caseforge.storage.base import RiskLevel
from caseforge.storage.memory import InMemoryAuditStore


def _hit(limiter, user, action, times):
    for _ in range(times):
        limiter.is_allowed(action_key(user, action), max_requests=10, window_ms=60_000)


@pytest.mark.parametrize(
    ("action", "hits", "expected"),
    [
        ("sell_item", 7, RiskLevel.LOW),
        ("sell_item", 8, RiskLevel.MEDIUM),
        ("sell_item", 11, RiskLevel.HIGH),
        ("open_case", 14, RiskLevel.LOW),
        ("open_case", 15, RiskLevel.MEDIUM),
        ("open_case", 21, RiskLevel.HIGH),
    ],
)
def test_classifier_thresholds(action, hits, expected):
    limiter = SlidingWindowLimiter(clock=ManualClock())
    classifier = RiskClassifier(limiter, RiskConfig())
    _hit(limiter, "u", action, hits)
    assert classifier.classify("u", action) is expected


def test_classifier_only_counts_trailing_minute():
    clock = ManualClock()
    limiter = SlidingWindowLimiter(clock=clock)
    classifier = RiskClassifier(limiter)
    _hit(limiter, "u", "sell_item", 11)
    clock.advance(60_000)
    assert classifier.classify("u", "sell_item") is RiskLevel.LOW


def test_classifier_unknown_action_is_low():
    limiter = SlidingWindowLimiter(clock=ManualClock())
    _hit(limiter, "u", "redeem_code", 100)
    assert RiskClassifier(limiter).classify("u", "redeem_code") is RiskLevel.LOW


@pytest.mark.asyncio()
async def test_record_is_immutable_and_newest_first():
    clock = ManualClock()
    limiter = SlidingWindowLimiter(clock=clock)
    trail = AuditTrail(InMemoryAuditStore(), RiskClassifier(limiter), clock=clock)

    details = {"item_id": "a"}
    first = await trail.record("u", "sell_item", details)
    details["item_id"] = "changed"
    clock.advance(1_000)
    await trail.record("u", "open_case", {"case_id": "c"}, success=False)
    await trail.record("other", "open_case", {})

    assert first.details["item_id"] == "a"
    with pytest.raises(TypeError):
        first.details["item_id"] = "b"

    entries = await trail.entries("u")
    assert [entry.action for entry in entries] == ["open_case", "sell_item"]
    assert entries[0].timestamp > entries[1].timestamp
    assert len(await trail.entries()) == 3
    assert len(await trail.entries(limit=1)) == 1


@pytest.mark.asyncio()
async def test_explicit_risk_is_a_floor():
    limiter = SlidingWindowLimiter(clock=ManualClock())
    trail = AuditTrail(InMemoryAuditStore(), RiskClassifier(limiter), clock=ManualClock())
    _hit(limiter, "u", "sell_item", 11)

    low_floor = await trail.record("u", "sell_item", risk_level=RiskLevel.LOW)
    assert low_floor.risk_level is RiskLevel.HIGH
    quiet = await trail.record("v", "sell_item", risk_level=RiskLevel.MEDIUM)
    assert quiet.risk_level is RiskLevel.MEDIUM
