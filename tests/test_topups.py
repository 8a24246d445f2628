import asyncio
from decimal import Decimal

import pytest

from app.core.exceptions import BadRequestError, InvalidStateError
from app.models.coin_ledger import CoinLedgerEntry, LedgerReason
from app.models.coin_topup import CoinTopup, TopupStatus
from app.models.user import User
from app.services import topups as topups_service
from app.services.pricing import Pricing, StaticPricingProvider
from app.services.topups import TopupWorkflow

pytestmark = pytest.mark.asyncio


def _workflow(pricing, recorder, **kwargs) -> TopupWorkflow:
    return TopupWorkflow(pricing, notify=recorder.notify, audit=recorder.audit, **kwargs)


async def _topup_entries(user_id):
    return await CoinLedgerEntry.find(
        CoinLedgerEntry.user_id == user_id,
        CoinLedgerEntry.reason == LedgerReason.TOPUP,
    ).to_list()


async def test_submit_snapshots_price(make_user, pricing, recorder):
    user = await make_user()
    topup = await _workflow(pricing, recorder).submit(user.id, "100", "slips/abc.jpg")
    assert topup.status == TopupStatus.PENDING
    assert topup.amount_mvr == Decimal("100.00")
    assert topup.price_per_coin == Decimal("10.00")
    assert topup.computed_coins is None
    assert (await User.get(user.id)).coins == 0


async def test_submit_requires_slip_and_one_coin(make_user, pricing, recorder):
    user = await make_user()
    wf = _workflow(pricing, recorder)
    with pytest.raises(BadRequestError):
        await wf.submit(user.id, "100", "  ")
    with pytest.raises(BadRequestError):
        await wf.submit(user.id, "9.99", "slip")
    assert await CoinTopup.find_all().count() == 0


async def test_approve_credits_once(make_user, pricing, recorder):
    user = await make_user()
    wf = _workflow(pricing, recorder)
    topup = await wf.submit(user.id, "100", "slip")

    approved = await wf.approve(topup.id, "admin1", note="ok")
    assert approved.status == TopupStatus.APPROVED
    assert approved.computed_coins == 10
    assert approved.credited_price_per_coin == Decimal("10.00")
    assert approved.reviewed_by == "admin1"
    assert approved.reviewed_at is not None
    assert (await User.get(user.id)).coins == 10

    entries = await _topup_entries(user.id)
    assert len(entries) == 1
    assert entries[0].delta == 10
    assert entries[0].ref_table == "coin_topups"
    assert entries[0].ref_id == str(topup.id)
    assert entries[0].idempotency_key == f"topup:{topup.id}"

    with pytest.raises(InvalidStateError) as exc:
        await wf.approve(topup.id, "admin2")
    assert exc.value.current_status == "APPROVED"
    assert (await User.get(user.id)).coins == 10
    assert len(await _topup_entries(user.id)) == 1

    assert recorder.notifications == [
        (str(user.id), "TOPUP_APPROVED", {"topup_id": str(topup.id), "coins": 10, "balance": 10, "note": "ok"})
    ]
    assert [a[1] for a in recorder.audits] == ["TOPUP_APPROVED"]


async def test_concurrent_approvals_credit_once(make_user, pricing, recorder):
    user = await make_user()
    wf = _workflow(pricing, recorder)
    topup = await wf.submit(user.id, "250", "slip")
    results = await asyncio.gather(
        wf.approve(topup.id, "admin1"),
        wf.approve(topup.id, "admin2"),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, CoinTopup)) == 1
    assert sum(1 for r in results if isinstance(r, InvalidStateError)) == 1
    assert (await User.get(user.id)).coins == 25
    assert len(await _topup_entries(user.id)) == 1


async def test_reject_is_terminal(make_user, pricing, recorder):
    user = await make_user()
    wf = _workflow(pricing, recorder)
    topup = await wf.submit(user.id, "50", "slip")

    rejected = await wf.reject(topup.id, "admin1", note="slip unreadable")
    assert rejected.status == TopupStatus.REJECTED
    assert rejected.admin_note == "slip unreadable"

    with pytest.raises(InvalidStateError):
        await wf.reject(topup.id, "admin2", note="second note")
    with pytest.raises(InvalidStateError):
        await wf.approve(topup.id, "admin2")

    stored = await CoinTopup.get(topup.id)
    assert stored.status == TopupStatus.REJECTED
    assert stored.admin_note == "slip unreadable"
    assert stored.reviewed_by == "admin1"
    assert (await User.get(user.id)).coins == 0
    assert await _topup_entries(user.id) == []
    assert [n[1] for n in recorder.notifications] == ["TOPUP_REJECTED"]


async def test_approval_uses_current_price_by_default(make_user, recorder):
    user = await make_user()
    at_submit = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("10.00"), cost_post=2, cost_connect=5))
    at_approval = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("20.00"), cost_post=2, cost_connect=5))
    topup = await _workflow(at_submit, recorder).submit(user.id, "100", "slip")
    approved = await _workflow(at_approval, recorder, rate_policy="approval").approve(topup.id, "admin1")
    assert approved.computed_coins == 5
    assert approved.price_per_coin == Decimal("10.00")
    assert approved.credited_price_per_coin == Decimal("20.00")


async def test_submission_rate_policy(make_user, recorder):
    user = await make_user()
    at_submit = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("10.00"), cost_post=2, cost_connect=5))
    at_approval = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("20.00"), cost_post=2, cost_connect=5))
    topup = await _workflow(at_submit, recorder).submit(user.id, "100", "slip")
    approved = await _workflow(at_approval, recorder, rate_policy="submission").approve(topup.id, "admin1")
    assert approved.computed_coins == 10
    assert approved.credited_price_per_coin == Decimal("10.00")
    assert (await User.get(user.id)).coins == 10


async def test_zero_coin_approval_is_refused(make_user, recorder):
    user = await make_user()
    cheap = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("10.00"), cost_post=2, cost_connect=5))
    dear = StaticPricingProvider(Pricing(coin_price_mvr=Decimal("500.00"), cost_post=2, cost_connect=5))
    topup = await _workflow(cheap, recorder).submit(user.id, "100", "slip")
    with pytest.raises(BadRequestError):
        await _workflow(dear, recorder).approve(topup.id, "admin1")
    assert (await CoinTopup.get(topup.id)).status == TopupStatus.PENDING
    assert (await User.get(user.id)).coins == 0


async def test_notification_failure_keeps_credit(make_user, pricing, recorder):
    user = await make_user()

    async def broken(user_id, kind, payload):
        raise RuntimeError("notifications down")

    from app.services import notifications

    async def notify(user_id, kind, payload):
        await notifications.notify(user_id, kind, payload, deliver=broken)

    wf = TopupWorkflow(pricing, notify=notify, audit=recorder.audit)
    topup = await wf.submit(user.id, "30", "slip")
    approved = await wf.approve(topup.id, "admin1")
    assert approved.status == TopupStatus.APPROVED
    assert (await User.get(user.id)).coins == 3


async def test_queue_and_listing(make_user, pricing, recorder):
    a = await make_user()
    b = await make_user()
    wf = _workflow(pricing, recorder)
    t1 = await wf.submit(a.id, "10", "s1")
    await wf.submit(b.id, "20", "s2")
    await wf.approve(t1.id, "admin1")

    pending, total = await topups_service.list_queue(TopupStatus.PENDING)
    assert total == 1
    assert pending[0].amount_mvr == Decimal("20.00")
    _, total_all = await topups_service.list_queue(None)
    assert total_all == 2
    mine = await topups_service.list_for_user(a.id)
    assert [t.id for t in mine] == [t1.id]
