"""Tests for the commission ledger: accrual rules, balances, payouts and earnings."""

import pytest

from app.core.errors import ConflictError, NotFoundError
from app.features.partners.ledger import (
    accrue_commission,
    create_payout,
    earnings,
    list_ledger,
    list_payouts,
    pending_balance,
)
from app.features.partners.schemas import PartnerCreate, PartnerUpdate, PayoutCreate
from app.features.partners.service import create_partner, update_partner


async def _partner(db, **kw):
    fields = {"code": "REFA", "name": "Referrer", "email": "ref@example.com", **kw}
    return await create_partner(db, PartnerCreate(**fields))


def _paid_quote(partner_id, quote_id, price=500.0, **kw):
    return {"id": quote_id, "partner_id": partner_id, "partner_mode": "A", "price": price, "status": "paid", **kw}


@pytest.mark.asyncio
async def test_accrual_skip_reasons(db):
    partner = await _partner(db)

    out = await accrue_commission(db, source_kind="quote", source=_paid_quote(None, "q0"))
    assert out.detail == "no_partner"

    out = await accrue_commission(db, source_kind="quote", source=_paid_quote("ghost", "q1"))
    assert out.detail == "partner_not_found"

    out = await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, "q2", partner_mode="B"))
    assert out.detail == "not_mode_a"

    await update_partner(db, partner.id, PartnerUpdate(status="suspended"))
    out = await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, "q3"))
    assert out.skipped
    assert out.detail == "partner_inactive"

    assert await db["commission_ledger"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_zero_rate_writes_no_entry(db):
    partner = await _partner(db, commission_percent=0)
    out = await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, "q1"))
    assert out.detail == "non_positive_amount"
    assert await list_ledger(db, partner.id) == []


@pytest.mark.asyncio
async def test_revised_price_is_the_commission_base(db):
    partner = await _partner(db)
    await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, "q1", revised_price=300))

    [entry] = await list_ledger(db, partner.id)
    assert entry.quote_total == 300.0
    assert entry.commission_amount == 15.0
    assert len(entry.period) == 7


@pytest.mark.asyncio
async def test_payout_claims_every_pending_entry_once(db):
    partner = await _partner(db)
    for qid in ("q1", "q2"):
        await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, qid))

    balance = await pending_balance(db, partner.id)
    assert (balance.pending_total, balance.pending_count) == (50.0, 2)

    payout = await create_payout(db, partner.id, PayoutCreate(reference="BT-001"))
    assert payout.amount == 50.0
    assert len(payout.ledger_entry_ids) == 2
    assert payout.payment_method == "bank_transfer"

    paid = await list_ledger(db, partner.id, status="paid")
    assert {e.payout_id for e in paid} == {payout.id}
    assert all(e.paid_at is not None for e in paid)

    with pytest.raises(ConflictError) as exc:
        await create_payout(db, partner.id, PayoutCreate())
    assert exc.value.code == "nothing_to_pay"

    balance = await pending_balance(db, partner.id)
    assert (balance.pending_total, balance.pending_count) == (0.0, 0)
    assert [p.id for p in await list_payouts(db, partner.id)] == [payout.id]


@pytest.mark.asyncio
async def test_payout_of_specific_entries(db):
    partner = await _partner(db)
    for qid in ("q1", "q2"):
        await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, qid))
    first = (await list_ledger(db, partner.id))[0]

    payout = await create_payout(db, partner.id, PayoutCreate(ledger_entry_ids=[first.id, first.id]))
    assert payout.ledger_entry_ids == [first.id]
    assert payout.amount == 25.0

    with pytest.raises(ConflictError) as exc:
        await create_payout(db, partner.id, PayoutCreate(ledger_entry_ids=[first.id, "missing"]))
    assert exc.value.code == "nothing_to_pay"

    assert (await pending_balance(db, partner.id)).pending_count == 1


@pytest.mark.asyncio
async def test_earnings_combine_commission_and_settlements(db):
    partner = await _partner(db, modes=["A", "B"])
    for qid in ("q1", "q2"):
        await accrue_commission(db, source_kind="quote", source=_paid_quote(partner.id, qid))
    await create_payout(db, partner.id, PayoutCreate(ledger_entry_ids=[(await list_ledger(db, partner.id))[0].id]))

    await db["quotes"].insert_one(_paid_quote(partner.id, "b1", price=450.0, partner_mode="B"))
    await db["bulk_quotes"].insert_one(
        {"id": "bq1", "partner_id": partner.id, "partner_mode": "B", "status": "paid", "total_indicative": 900.0, "total_final": 880.0}
    )
    await db["quotes"].insert_one(_paid_quote(partner.id, "b2", price=999.0, partner_mode="B", status="inspected"))

    view = await earnings(db, partner.id)
    assert view.modes == ["A", "B"]
    assert view.commission_pending == 25.0
    assert view.commission_paid == 25.0
    assert view.settlements_total == 1330.0
    assert sorted(s.source_id for s in view.settlements) == ["b1", "bq1"]
    assert len(view.entries) == 2


@pytest.mark.asyncio
async def test_unknown_partner(db):
    with pytest.raises(NotFoundError) as exc:
        await pending_balance(db, "nope")
    assert exc.value.code == "partner_not_found"
