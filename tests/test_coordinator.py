import asyncio
import uuid

import pytest

from caseforge.config import CaseForgeConfig, RateLimitRule, RetryConfig
from caseforge.domain.coordinator import OpenCaseRequest
from caseforge.domain.events import ACTION_COMPLETED
from caseforge.domain.exceptions import TransportFailure
from caseforge.domain.idempotency import LatchState, OneShotLatch
from caseforge.domain.results import Err, ErrorKind, Ok
from caseforge.ledger.transport import pending_calls
from caseforge.storage.base import RiskLevel
from caseforge.testing import CaseFactory, RewardFactory, app_fixture


async def wait_for_calls(ledger, method, count=1):
    for _ in range(100):
        if ledger.calls[method] >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{method} was not called {count} time(s)")


@pytest.mark.asyncio()
async def test_open_case_success(memory_app, fault_ledger, case, user_id):
    fault_ledger.seed_balance(user_id, 1_000)
    result = await memory_app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))

    assert isinstance(result, Ok)
    opening = result.value
    assert opening.success
    assert opening.new_balance == 900
    assert opening.reward in {entry.item for entry in case.rewards}
    assert opening.rewards[opening.winner_index] == opening.reward
    assert opening.session_id is not None
    assert fault_ledger.calls["open_case"] == 1
    assert len(fault_ledger.items(user_id)) == 1

    snapshot = memory_app.projection.get(user_id)
    assert snapshot is not None
    assert snapshot.balance == 900
    assert not snapshot.stale

    entries = await memory_app.audit.entries(user_id)
    assert len(entries) == 1
    assert entries[0].success
    assert entries[0].details["session_id"] == opening.session_id


@pytest.mark.asyncio()
async def test_repeated_triggers_on_one_gesture_dispatch_once(memory_app, fault_ledger, case, user_id):
    fault_ledger.seed_balance(user_id, 1_000)
    gate = fault_ledger.hold("open_case")
    latch = OneShotLatch()
    request = OpenCaseRequest(user_id, case.case_id)

    first = asyncio.create_task(memory_app.coordinator.open_case(request, latch=latch))
    await wait_for_calls(fault_ledger, "open_case")

    repeats = [await memory_app.coordinator.open_case(request, latch=latch) for _ in range(4)]
    assert all(isinstance(r, Err) and r.kind is ErrorKind.DUPLICATE for r in repeats)

    gate.set()
    assert isinstance(await first, Ok)
    late = await memory_app.coordinator.open_case(request, latch=latch)
    assert isinstance(late, Err) and late.kind is ErrorKind.DUPLICATE

    assert fault_ledger.calls["open_case"] == 1
    assert fault_ledger.balance(user_id) == 900
    assert latch.state is LatchState.DONE


@pytest.mark.asyncio()
async def test_transport_failure_keeps_token_for_reattach(
    memory_app, fault_ledger, manual_clock, case, user_id
):
    fault_ledger.seed_balance(user_id, 1_000)
    fault_ledger.fail("open_case", error=TransportFailure("connection reset"))
    request = OpenCaseRequest(user_id, case.case_id)
    latch = OneShotLatch()

    failed = await memory_app.coordinator.open_case(request, latch=latch)
    assert isinstance(failed, Err)
    assert failed.kind is ErrorKind.TRANSPORT
    assert latch.state is LatchState.IDLE

    token = await memory_app.guard.active_session(user_id, case.case_id)
    assert token is not None
    assert not token.consumed

    retry = await memory_app.coordinator.open_case(request)
    assert isinstance(retry, Err)
    assert retry.kind is ErrorKind.DUPLICATE
    assert retry.session_id == token.session_id
    assert fault_ledger.calls["open_case"] == 1

    manual_clock.advance(600_001)
    after_ttl = await memory_app.coordinator.open_case(request)
    assert isinstance(after_ttl, Ok)
    assert after_ttl.value.session_id != token.session_id


@pytest.mark.asyncio()
async def test_connection_error_maps_to_transport(memory_app, fault_ledger, case, user_id):
    fault_ledger.fail("open_case", error=ConnectionError("refused"))
    result = await memory_app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.TRANSPORT


@pytest.mark.asyncio()
async def test_timed_out_open_case_still_lands_on_the_ledger(fault_ledger, manual_clock, case, user_id):
    config = CaseForgeConfig(bot_token="test", rpc_timeout_seconds=0.01)
    app = app_fixture(ledger=fault_ledger, clock=manual_clock, config=config)
    fault_ledger.seed_balance(user_id, 1_000)
    fault_ledger.delay("open_case", 0.05)

    result = await app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.TRANSPORT

    await asyncio.sleep(0.2)
    assert pending_calls() == 0
    assert fault_ledger.balance(user_id) == 900
    assert len(fault_ledger.items(user_id)) == 1
    assert fault_ledger.calls["open_case"] == 1


def _impatient_app(fault_ledger, manual_clock):
    config = CaseForgeConfig(bot_token="test", rpc_timeout_seconds=0.05)
    config.retry = RetryConfig(max_attempts=2, base_delay_ms=1, max_delay_ms=1)
    return app_fixture(ledger=fault_ledger, clock=manual_clock, config=config)


@pytest.mark.asyncio()
async def test_hung_balance_read_does_not_hang_a_landed_opening(fault_ledger, manual_clock, case, user_id):
    app = _impatient_app(fault_ledger, manual_clock)
    fault_ledger.seed_balance(user_id, 1_000)
    gate = fault_ledger.hold("fetch_balance")

    result = await asyncio.wait_for(
        app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id)), timeout=2
    )

    assert isinstance(result, Ok)
    assert result.value.new_balance == 900
    assert fault_ledger.balance(user_id) == 900
    assert fault_ledger.calls["fetch_balance"] == 2
    assert app.projection.get(user_id) is None

    entries = await app.audit.entries(user_id)
    assert len(entries) == 1
    assert entries[0].success

    gate.set()
    await asyncio.sleep(0.01)
    assert pending_calls() == 0


@pytest.mark.asyncio()
async def test_unreachable_balance_read_leaves_stale_view(fault_ledger, manual_clock, case, user_id):
    app = _impatient_app(fault_ledger, manual_clock)
    fault_ledger.seed_balance(user_id, 1_000)
    request = OpenCaseRequest(user_id, case.case_id)
    assert isinstance(await app.coordinator.open_case(request), Ok)
    manual_clock.advance(1_000)

    fault_ledger.fail("fetch_balance", error=ConnectionError("reset"), times=2)
    result = await app.coordinator.open_case(request)

    assert isinstance(result, Ok)
    assert fault_ledger.balance(user_id) == 800
    snapshot = app.projection.get(user_id)
    assert snapshot is not None
    assert snapshot.stale
    assert snapshot.balance == 900

    latest = (await app.audit.entries(user_id))[0]
    assert latest.success
    assert latest.details["outcome"] == "success"



@pytest.mark.asyncio()
async def test_remote_rejection_surfaces_message_and_releases_latch(
    memory_app, fault_ledger, case, user_id
):
    fault_ledger.seed_balance(user_id, 50)
    latch = OneShotLatch()
    result = await memory_app.coordinator.open_case(
        OpenCaseRequest(user_id, case.case_id), latch=latch
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REMOTE_REJECTION
    assert result.message == "Insufficient funds"
    assert latch.state is LatchState.IDLE
    assert await memory_app.guard.active_session(user_id, case.case_id) is None
    assert fault_ledger.balance(user_id) == 50


@pytest.mark.asyncio()
async def test_invalid_identifiers_never_reach_ledger(memory_app, fault_ledger, case, user_id):
    bad_user = await memory_app.coordinator.open_case(OpenCaseRequest("42", case.case_id))
    bad_case = await memory_app.coordinator.open_case(OpenCaseRequest(user_id, "../cases"))
    bad_item = await memory_app.coordinator.sell_item(user_id, "not-an-id")

    for result in (bad_user, bad_case, bad_item):
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.VALIDATION
    assert sum(fault_ledger.calls.values()) == 0


@pytest.mark.asyncio()
async def test_free_case_requires_ad(memory_app, fault_ledger, user_id):
    free_case = CaseFactory().build(price=0, is_free=True)
    fault_ledger.register_case(free_case)

    denied = await memory_app.coordinator.open_case(
        OpenCaseRequest(user_id, free_case.case_id, is_free=True)
    )
    assert isinstance(denied, Err)
    assert denied.kind is ErrorKind.VALIDATION
    assert denied.message == "Ad view required for free case"
    assert fault_ledger.calls["open_case"] == 0

    allowed = await memory_app.coordinator.open_case(
        OpenCaseRequest(user_id, free_case.case_id, is_free=True, ad_watched=True)
    )
    assert isinstance(allowed, Ok)


@pytest.mark.asyncio()
async def test_rate_limit_denial_is_throttled_and_medium_risk(fault_ledger, manual_clock, case, user_id):
    config = CaseForgeConfig(bot_token="test")
    config.rate_limits["open_case"] = RateLimitRule(max_requests=2, window_ms=60_000)
    app = app_fixture(ledger=fault_ledger, clock=manual_clock, config=config)
    fault_ledger.seed_balance(user_id, 1_000)
    request = OpenCaseRequest(user_id, case.case_id)

    assert isinstance(await app.coordinator.open_case(request), Ok)
    manual_clock.advance(10_000)
    assert isinstance(await app.coordinator.open_case(request), Ok)
    manual_clock.advance(10_000)
    denied = await app.coordinator.open_case(request)

    assert isinstance(denied, Err)
    assert denied.kind is ErrorKind.THROTTLED
    assert denied.retry_after_ms == 40_000
    assert denied.message == "Too many attempts. Try again in 40 seconds"
    assert fault_ledger.calls["open_case"] == 2

    latest = (await app.audit.entries(user_id))[0]
    assert not latest.success
    assert latest.risk_level is RiskLevel.MEDIUM


@pytest.mark.asyncio()
async def test_lockout_trip_is_high_risk(memory_app, fault_ledger, case, user_id):
    fault_ledger.seed_balance(user_id, 10_000)
    request = OpenCaseRequest(user_id, case.case_id)
    for _ in range(5):
        assert isinstance(await memory_app.coordinator.open_case(request), Ok)

    tripped = await memory_app.coordinator.open_case(request)
    assert isinstance(tripped, Err)
    assert tripped.kind is ErrorKind.THROTTLED
    assert tripped.retry_after_ms == 300_000
    assert fault_ledger.calls["open_case"] == 5

    latest = (await memory_app.audit.entries(user_id))[0]
    assert latest.risk_level is RiskLevel.HIGH


@pytest.mark.asyncio()
async def test_sell_item_credits_and_rejects_second_sale(memory_app, fault_ledger, user_id):
    fault_ledger.seed_balance(user_id, 100)
    item = fault_ledger.grant_item(user_id, RewardFactory().build(value=40))

    sold = await memory_app.coordinator.sell_item(user_id, item.item_id)
    assert isinstance(sold, Ok)
    assert sold.value.new_balance == 140
    assert sold.value.message == "Sold for 40 coins"

    again = await memory_app.coordinator.sell_item(user_id, item.item_id)
    assert isinstance(again, Err)
    assert again.kind is ErrorKind.REMOTE_REJECTION
    assert again.message == "Item already sold"
    assert fault_ledger.balance(user_id) == 140


@pytest.mark.asyncio()
async def test_sell_item_of_other_user_is_rejected(memory_app, fault_ledger, user_id):
    owner = str(uuid.uuid4())
    item = fault_ledger.grant_item(owner, RewardFactory().build(value=40))
    result = await memory_app.coordinator.sell_item(user_id, item.item_id)
    assert isinstance(result, Err)
    assert result.message == "Item not found"
    assert not fault_ledger.get_item(item.item_id).is_sold


@pytest.mark.asyncio()
async def test_every_attempt_publishes_completion(memory_app, fault_ledger, case, user_id):
    seen = []

    async def listener(payload):
        seen.append((payload["action"], payload["success"], payload["kind"]))

    memory_app.event_bus.subscribe(ACTION_COMPLETED, listener)
    fault_ledger.seed_balance(user_id, 100)
    await memory_app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))
    await memory_app.coordinator.open_case(OpenCaseRequest(user_id, case.case_id))

    assert seen == [
        ("open_case", True, None),
        ("open_case", False, "remote_rejection"),
    ]


@pytest.mark.asyncio()
async def test_denied_attempts_raise_classified_risk(memory_app, fault_ledger, case, user_id):
    fault_ledger.seed_balance(user_id, 10_000)
    request = OpenCaseRequest(user_id, case.case_id)

    for _ in range(15):
        await memory_app.coordinator.open_case(request)
    assert fault_ledger.calls["open_case"] == 5
    assert memory_app.classifier.frequency(user_id, "open_case") == 15
    assert memory_app.classifier.classify(user_id, "open_case") is RiskLevel.MEDIUM

    for _ in range(6):
        await memory_app.coordinator.open_case(request)
    assert memory_app.classifier.classify(user_id, "open_case") is RiskLevel.HIGH


@pytest.mark.asyncio()
async def test_rate_limited_burst_is_audited_high(fault_ledger, manual_clock, case, user_id):
    config = CaseForgeConfig(bot_token="test")
    config.lockout.max_attempts = 100
    app = app_fixture(ledger=fault_ledger, clock=manual_clock, config=config)
    fault_ledger.seed_balance(user_id, 10_000)
    request = OpenCaseRequest(user_id, case.case_id)

    results = [await app.coordinator.open_case(request) for _ in range(21)]

    assert sum(isinstance(r, Ok) for r in results) == 10
    assert all(r.kind is ErrorKind.THROTTLED for r in results[10:])
    entries = await app.audit.entries(user_id)
    assert entries[0].risk_level is RiskLevel.HIGH
    assert entries[-1].risk_level is RiskLevel.LOW
