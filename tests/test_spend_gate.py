import asyncio

import pytest
from pymongo.errors import OperationFailure

from app.core.exceptions import InsufficientFundsError, NotApprovedError, StorageError
from app.models.coin_ledger import CoinLedgerEntry, LedgerReason
from app.models.post import Post
from app.models.user import User, UserStatus
from app.services import ledger
from app.services.posts import create_post
from app.services.pricing import SpendAction
from app.services.spend_gate import SpendGate

pytestmark = pytest.mark.asyncio


async def _entries(user_id):
    return await CoinLedgerEntry.find(CoinLedgerEntry.user_id == user_id).sort(+CoinLedgerEntry.seq).to_list()


async def test_post_charges_and_records_ledger(make_user, pricing):
    user = await make_user(coins=10)
    result = await create_post(SpendGate(pricing), user.id, "Looking for a partner in Male")

    assert result.charge.cost == 2
    assert result.charge.balance_after == 8
    assert (await User.get(user.id)).coins == 8
    entries = await _entries(user.id)
    assert [e.delta for e in entries] == [10, -2]
    spend = entries[-1]
    assert spend.reason == LedgerReason.POST
    assert spend.ref_table == "posts"
    assert spend.ref_id == str(result.entity.id)
    assert spend.balance_after == 8
    assert spend.seq == 2
    assert await Post.get(result.entity.id) is not None


async def test_insufficient_funds_changes_nothing(make_user, pricing):
    user = await make_user(coins=1)
    with pytest.raises(InsufficientFundsError) as exc:
        await create_post(SpendGate(pricing), user.id, "hello")
    assert exc.value.required == 2
    assert exc.value.balance == 1
    assert (await User.get(user.id)).coins == 1
    assert len(await _entries(user.id)) == 1
    assert await Post.find_all().count() == 0


async def test_unapproved_user_cannot_spend(make_user, pricing):
    user = await make_user(status=UserStatus.PENDING, coins=10)
    with pytest.raises(NotApprovedError):
        await SpendGate(pricing).charge(user.id, SpendAction.CONNECT)
    assert (await User.get(user.id)).coins == 10
    assert len(await _entries(user.id)) == 1


async def test_charge_exact_balance_reaches_zero(make_user, pricing):
    user = await make_user(coins=5)
    charge = await SpendGate(pricing).charge(user.id, SpendAction.CONNECT, ref_id="abc")
    assert charge.balance_after == 0
    assert charge.entry.delta == -5
    assert charge.entry.ref_id == "abc"
    assert (await User.get(user.id)).coins == 0


async def test_free_action_writes_no_ledger_entry(make_user):
    from decimal import Decimal

    from app.services.pricing import Pricing, StaticPricingProvider

    free = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("10"), cost_post=0, cost_connect=0))
    user = await make_user()
    result = await create_post(SpendGate(free), user.id, "free post")
    assert result.charge.entry is None
    assert result.charge.balance_after == 0
    assert await _entries(user.id) == []


async def test_concurrent_charges_never_overdraw(make_user, pricing):
    user = await make_user(coins=7)
    gate = SpendGate(pricing)
    results = await asyncio.gather(
        gate.charge(user.id, SpendAction.CONNECT),
        gate.charge(user.id, SpendAction.CONNECT),
        return_exceptions=True,
    )
    ok = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], InsufficientFundsError)
    assert (await User.get(user.id)).coins == 2
    assert [e.delta for e in await _entries(user.id)] == [7, -5]


async def test_ledger_failure_rolls_back_charge(make_user, pricing, monkeypatch):
    user = await make_user(coins=10)

    async def broken_append(*args, **kwargs):
        raise RuntimeError("ledger write failed")

    monkeypatch.setattr(ledger, "append", broken_append)
    with pytest.raises(RuntimeError):
        await create_post(SpendGate(pricing), user.id, "hello")
    monkeypatch.undo()

    assert (await User.get(user.id)).coins == 10
    assert len(await _entries(user.id)) == 1
    assert await Post.find_all().count() == 0


async def test_entity_failure_rolls_back_charge(make_user, pricing):
    user = await make_user(coins=10)

    async def broken_create(session):
        raise ValueError("could not create")

    with pytest.raises(ValueError):
        await SpendGate(pricing).run_gated(user.id, SpendAction.POST, broken_create)
    assert (await User.get(user.id)).coins == 10
    assert len(await _entries(user.id)) == 1


async def test_driver_error_surfaces_as_storage_error(make_user, pricing, monkeypatch):
    user = await make_user(coins=10)

    async def failing_append(*args, **kwargs):
        raise OperationFailure("insert rejected", code=2)

    monkeypatch.setattr(ledger, "append", failing_append)
    with pytest.raises(StorageError) as exc:
        await create_post(SpendGate(pricing), user.id, "hello")
    monkeypatch.undo()

    assert exc.value.status_code == 503
    assert isinstance(exc.value.__cause__, OperationFailure)
    assert (await User.get(user.id)).coins == 10
    assert len(await _entries(user.id)) == 1
    assert await Post.find_all().count() == 0
