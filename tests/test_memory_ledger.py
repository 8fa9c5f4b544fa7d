from random import Random

import pytest

from caseforge.domain.rewards import CaseDefinition, CaseReward, RewardKind
from caseforge.ledger import InMemoryLedger
from caseforge.testing import CaseFactory, RewardFactory


@pytest.fixture()
def ledger():
    return InMemoryLedger(rng=Random(7))


@pytest.mark.asyncio()
async def test_open_case_charges_and_grants(ledger, user_id):
    case = CaseFactory().build(price=100)
    ledger.register_case(case)
    ledger.seed_balance(user_id, 250)

    response = await ledger.open_case(user_id, case.case_id)
    assert response.success
    assert response.new_balance == 150
    assert len(response.roulette_items) == 40
    assert response.roulette_items[response.winner_index] == response.reward
    assert [item.item_id for item in ledger.items(user_id)] == [response.inventory_id]


@pytest.mark.asyncio()
async def test_same_session_returns_cached_outcome(ledger, user_id):
    case = CaseFactory().build(price=100)
    ledger.register_case(case)
    ledger.seed_balance(user_id, 250)

    first = await ledger.open_case(user_id, case.case_id, session_id="s-1")
    second = await ledger.open_case(user_id, case.case_id, session_id="s-1")
    assert first == second
    assert ledger.balance(user_id) == 150
    assert len(ledger.items(user_id)) == 1


@pytest.mark.asyncio()
async def test_coin_grant_credits_balance(ledger, user_id):
    grant = RewardFactory().build(kind=RewardKind.COIN_GRANT, value=75)
    case = CaseDefinition(
        case_id="c", name="Coins", price=50, rewards=(CaseReward(item=grant),)
    )
    ledger.register_case(case)
    ledger.seed_balance(user_id, 50)

    response = await ledger.open_case(user_id, "c", coin_reward_id=grant.id)
    assert response.success
    assert response.inventory_id is None
    assert response.new_balance == 75
    assert ledger.items(user_id) == []


@pytest.mark.asyncio()
async def test_open_case_refusals(ledger, user_id):
    paid = CaseFactory().build(price=100)
    free = CaseFactory().build(price=0, is_free=True)
    ledger.register_case(paid)
    ledger.register_case(free)

    assert (await ledger.open_case(user_id, paid.case_id)).error == "Insufficient funds"
    assert (await ledger.open_case(user_id, paid.case_id, is_free=True)).error == "Case is not free"
    assert (
        await ledger.open_case(user_id, free.case_id, is_free=True)
    ).error == "Ad view required for free case"
    assert (
        await ledger.open_case(user_id, free.case_id, skin_id="missing")
    ).error == "Reward does not belong to case"
    assert not (await ledger.open_case(user_id, "unknown")).success
    assert ledger.journal == []


def test_register_case_twice_fails(ledger):
    case = CaseFactory().build()
    ledger.register_case(case)
    with pytest.raises(ValueError):
        ledger.register_case(case)


@pytest.mark.asyncio()
async def test_mark_sold_and_unsold(ledger, user_id):
    item = ledger.grant_item(user_id, RewardFactory().build(value=30))

    assert (await ledger.mark_item_sold(item.item_id, user_id, 25)).success
    assert ledger.get_item(item.item_id).sold_price == 25
    assert (await ledger.mark_item_sold(item.item_id, user_id, 25)).error == "Item already sold"
    assert await ledger.fetch_unsold_items(user_id) == []

    assert (await ledger.mark_item_unsold(item.item_id, user_id)).success
    unsold = await ledger.fetch_unsold_items(user_id)
    assert [entry.item_id for entry in unsold] == [item.item_id]
    assert unsold[0] is not item


@pytest.mark.asyncio()
async def test_adjust_balance_refuses_overdraft(ledger, user_id):
    ledger.seed_balance(user_id, 10)
    refused = await ledger.adjust_balance(user_id, -20, "manual")
    assert not refused.success
    credited = await ledger.adjust_balance(user_id, 15, "bulk_skin_sale")
    assert credited.new_balance == 25
    assert ledger.journal == [(user_id, 15, "bulk_skin_sale")]


def test_default_balance_applies_to_new_users():
    ledger = InMemoryLedger(default_balance=1_000)
    assert ledger.balance("anyone") == 1_000
