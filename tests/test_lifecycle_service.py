"""Tests for status transitions and their side effects."""

from dataclasses import replace

import pytest

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.principal import Principal
from app.features.estimates.schemas import EstimateCreate, ManifestRowIn
from app.features.estimates.service import create_estimate
from app.features.lifecycle.engine import TransitionContext, apply_transition
from app.features.lifecycle.schemas import TransitionRequest
from app.features.lifecycle.service import transition_bulk_quote, transition_order, transition_quote
from app.features.lifecycle.specs import QUOTE_SPEC
from app.features.orders.schemas import InventoryCreate, OrderCreate, PaymentConfirm, ShippingAddress
from app.features.orders.service import add_inventory_item, confirm_payment, create_order, list_inventory
from app.features.partners.ledger import accrue_commission, earnings, list_ledger
from app.features.partners.schemas import PartnerCreate
from app.features.partners.service import create_partner
from app.features.quotes.schemas import QuoteCreate
from app.features.quotes.service import create_quote, get_quote

TRACKING = {"tracking_carrier": "NZ Post", "tracking_number": "NZ123"}


async def _quote(db, caches, partner_code=None, principal=None):
    return await create_quote(
        db,
        caches,
        QuoteCreate(
            device_id=1,
            grade="A",
            customer_name="Sam",
            customer_email="sam@example.com",
            partner_code=partner_code,
        ),
        principal,
    )


async def _walk_to_paid(db, notifier, quote_id, **inspection):
    await transition_quote(db, notifier, quote_id, TransitionRequest(status="accepted"))
    await transition_quote(db, notifier, quote_id, TransitionRequest(status="shipped", **TRACKING))
    await transition_quote(db, notifier, quote_id, TransitionRequest(status="received"))
    await transition_quote(db, notifier, quote_id, TransitionRequest(status="inspected", **inspection))
    return await transition_quote(db, notifier, quote_id, TransitionRequest(status="paid"))


def _effects(resp):
    return {s.name: s for s in resp.side_effects}


@pytest.mark.asyncio
async def test_quote_cannot_skip_states(db, caches, notifier, price_list):
    quote = await _quote(db, caches)
    with pytest.raises(ConflictError) as exc:
        await transition_quote(db, notifier, quote.id, TransitionRequest(status="paid"))
    assert exc.value.details["allowed"] == ["accepted", "cancelled"]
    assert (await get_quote(db, quote.id)).status == "quoted"


@pytest.mark.asyncio
async def test_shipping_requires_tracking(db, caches, notifier, price_list):
    quote = await _quote(db, caches)
    await transition_quote(db, notifier, quote.id, TransitionRequest(status="accepted"))

    with pytest.raises(ValidationError) as exc:
        await transition_quote(db, notifier, quote.id, TransitionRequest(status="shipped", tracking_carrier="NZ Post"))
    assert exc.value.code == "tracking_number"

    resp = await transition_quote(db, notifier, quote.id, TransitionRequest(status="shipped", **TRACKING))
    assert resp.previous_status == "accepted"
    assert resp.entity["tracking_number"] == "NZ123"
    assert resp.entity["shipped_at"] is not None


@pytest.mark.asyncio
async def test_concurrent_status_change_is_rejected(db, caches, notifier, price_list):
    quote = await _quote(db, caches)

    async def cancelled_meanwhile(ctx, doc, target, payload):
        await ctx.db[QUOTE_SPEC.collection].update_one({"id": doc["id"]}, {"$set": {"status": "cancelled"}})

    spec = replace(QUOTE_SPEC, pre_check=cancelled_meanwhile)
    with pytest.raises(ConflictError) as exc:
        await apply_transition(TransitionContext(db=db, notifier=notifier), spec, quote.id, "accepted")
    assert exc.value.code == "stale_status"
    assert exc.value.details == {"expected": "quoted", "requested": "accepted"}

    stored = await get_quote(db, quote.id)
    assert stored.status == "cancelled"
    assert stored.accepted_at is None


@pytest.mark.asyncio
async def test_paid_referral_quote_accrues_commission_once(db, caches, notifier, price_list):
    partner = await create_partner(db, PartnerCreate(code="REFA", name="Referrer", email="ref@example.com"))
    quote = await _quote(db, caches, partner_code="REFA")
    assert quote.price == 500.0

    resp = await _walk_to_paid(db, notifier, quote.id, inspection_grade="b", revised_price=450)
    assert resp.status == "paid"
    assert resp.entity["inspection_grade"] == "B"
    assert resp.entity["revised_price"] == 450.0

    effects = _effects(resp)
    assert effects["commission"].ok
    assert effects["commission"].detail.startswith("entry=")
    assert effects["notification"].skipped
    assert effects["notification"].detail == "disabled"

    entries = await list_ledger(db, partner.id)
    assert len(entries) == 1
    assert (entries[0].commission_amount, entries[0].quote_total, entries[0].device_count) == (22.5, 450.0, 1)
    assert entries[0].status == "pending"

    replay = await accrue_commission(db, source_kind="quote", source=resp.entity)
    assert replay.skipped
    assert replay.detail == "already_accrued"
    assert len(await list_ledger(db, partner.id)) == 1


@pytest.mark.asyncio
async def test_consumer_quote_has_no_commission(db, caches, notifier, price_list):
    quote = await _quote(db, caches)
    resp = await _walk_to_paid(db, notifier, quote.id)
    assert _effects(resp)["commission"].detail == "no_partner"
    assert await db["commission_ledger"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_mode_b_quote_settles_without_commission(db, caches, notifier, price_list):
    partner = await create_partner(
        db, PartnerCreate(code="SHOPB", name="Shop B", email="b@example.com", modes=["B"], rate_discount=10)
    )
    principal = Principal(id=partner.id, role="partner", modes=frozenset({"B"}))
    quote = await _quote(db, caches, principal=principal)
    assert quote.price == 450.0
    assert quote.partner_mode == "B"

    resp = await _walk_to_paid(db, notifier, quote.id)
    assert _effects(resp)["commission"].detail == "not_mode_a"

    view = await earnings(db, partner.id)
    assert view.settlements_total == 450.0
    assert view.commission_pending == 0.0


@pytest.mark.asyncio
async def test_tiered_commission_counts_monthly_volume(db, caches, notifier, price_list):
    partner = await create_partner(
        db,
        PartnerCreate(
            code="TIER",
            name="Tiered",
            email="t@example.com",
            commission_model="tiered",
            commission_tiers=[{"min_qty": 0, "rate": 2}, {"min_qty": 2, "rate": 10}],
        ),
    )
    first = await _quote(db, caches, partner_code="TIER")
    second = await _quote(db, caches, partner_code="TIER")
    await _walk_to_paid(db, notifier, first.id)
    await _walk_to_paid(db, notifier, second.id)

    amounts = sorted(e.commission_amount for e in await list_ledger(db, partner.id))
    assert amounts == [10.0, 50.0]


class _BrokenNotifier:
    async def notify_paid(self, *, kind, doc):
        raise RuntimeError("smtp down")


@pytest.mark.asyncio
async def test_failed_side_effect_does_not_undo_transition(db, caches, price_list):
    quote = await _quote(db, caches)
    resp = await _walk_to_paid(db, _BrokenNotifier(), quote.id)

    failed = _effects(resp)["notification"]
    assert not failed.ok
    assert failed.error == "smtp down"
    assert (await get_quote(db, quote.id)).status == "paid"


@pytest.mark.asyncio
async def test_paid_bulk_quote_accrues_flat_commission_per_matched_unit(db, caches, notifier, price_list):
    partner = await create_partner(
        db,
        PartnerCreate(code="FLAT", name="Flat", email="f@example.com", commission_model="flat", commission_flat=7.5),
    )
    est = await create_estimate(
        db,
        caches,
        EstimateCreate(
            contact_name="Ana",
            contact_email="ana@example.com",
            partner_code="FLAT",
            rows=[
                ManifestRowIn(raw_text="Apple iPhone 13 Pro 256GB", quantity=2),
                ManifestRowIn(raw_text="iphone 13 128gb x3"),
                ManifestRowIn(raw_text="unknown thing", quantity=4),
            ],
        ),
    )
    for status in ("accepted", "received", "inspected", "paid"):
        resp = await transition_bulk_quote(db, notifier, est.id, TransitionRequest(status=status))

    assert resp.status == "paid"
    entries = await list_ledger(db, partner.id)
    assert len(entries) == 1
    assert entries[0].source_kind == "bulk_quote"
    assert entries[0].device_count == 5
    assert entries[0].commission_amount == 37.5


@pytest.mark.asyncio
async def test_missing_entity_is_not_found(db, notifier):
    with pytest.raises(NotFoundError) as exc:
        await transition_quote(db, notifier, "nope", TransitionRequest(status="accepted"))
    assert exc.value.code == "quote_not_found"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

ADDRESS = ShippingAddress(name="Kim", line1="1 Queen St", city="Auckland", postcode="1010")


async def _stock(db, n=2):
    return [
        (await add_inventory_item(db, InventoryCreate(device_id=1, grade="B", price=420 + i))).inventory_id
        for i in range(n)
    ]


async def _statuses(db):
    return {i.inventory_id: i.status for i in await list_inventory(db)}


@pytest.mark.asyncio
async def test_cancelling_a_paid_order_relists_items(db, notifier, price_list):
    ids = await _stock(db)
    order = await create_order(db, OrderCreate(inventory_ids=ids, customer_email="kim@example.com", shipping_address=ADDRESS))
    assert order.total == 841.0
    assert set((await _statuses(db)).values()) == {"sold"}

    with pytest.raises(ConflictError):
        await transition_order(db, notifier, order.id, TransitionRequest(status="cancelled"))

    await confirm_payment(db, order.id, PaymentConfirm(payment_reference="pi_123"))
    resp = await transition_order(db, notifier, order.id, TransitionRequest(status="cancelled", cancel_reason="changed mind"))

    assert resp.entity["status"] == "cancelled"
    assert resp.entity["cancel_reason"] == "changed mind"
    assert set((await _statuses(db)).values()) == {"listed"}


@pytest.mark.asyncio
async def test_cancel_with_missing_inventory_changes_nothing(db, notifier, price_list):
    ids = await _stock(db)
    order = await create_order(db, OrderCreate(inventory_ids=ids, customer_email="kim@example.com", shipping_address=ADDRESS))
    await confirm_payment(db, order.id, PaymentConfirm(payment_reference="pi_123"))
    await db["inventory"].delete_one({"inventory_id": ids[1]})

    with pytest.raises(NotFoundError) as exc:
        await transition_order(db, notifier, order.id, TransitionRequest(status="cancelled"))
    assert exc.value.code == "inventory_not_found"

    assert (await db["orders"].find_one({"id": order.id}))["status"] == "paid"
    assert (await _statuses(db))[ids[0]] == "sold"


@pytest.mark.asyncio
async def test_checkout_fails_whole_order_when_an_item_is_sold(db, notifier, price_list):
    ids = await _stock(db)
    await create_order(db, OrderCreate(inventory_ids=[ids[1]], customer_email="a@example.com", shipping_address=ADDRESS))

    with pytest.raises(ConflictError) as exc:
        await create_order(db, OrderCreate(inventory_ids=ids, customer_email="b@example.com", shipping_address=ADDRESS))
    assert exc.value.code == "item_unavailable"

    statuses = await _statuses(db)
    assert statuses[ids[0]] == "listed"
    assert statuses[ids[1]] == "sold"
    assert await db["orders"].count_documents({}) == 1


@pytest.mark.asyncio
async def test_order_fulfilment_path(db, notifier, price_list):
    ids = await _stock(db, n=1)
    order = await create_order(db, OrderCreate(inventory_ids=ids, customer_email="kim@example.com", shipping_address=ADDRESS))
    await confirm_payment(db, order.id, PaymentConfirm(payment_reference="pi_1"))

    with pytest.raises(ConflictError) as exc:
        await confirm_payment(db, order.id, PaymentConfirm(payment_reference="pi_2"))
    assert exc.value.code == "invalid_transition"

    await transition_order(db, notifier, order.id, TransitionRequest(status="processing"))
    with pytest.raises(ValidationError):
        await transition_order(db, notifier, order.id, TransitionRequest(status="shipped"))
    await transition_order(db, notifier, order.id, TransitionRequest(status="shipped", **TRACKING))
    resp = await transition_order(db, notifier, order.id, TransitionRequest(status="delivered"))
    assert resp.entity["delivered_at"] is not None

    with pytest.raises(ConflictError):
        await transition_order(db, notifier, order.id, TransitionRequest(status="cancelled"))
