# app/features/lifecycle/specs.py
"""
Per-entity hooks for the lifecycle engine.

Quote      shipped needs carrier + tracking; inspected may carry
           inspection_grade / revised_price; paid -> commission + email
BulkQuote  paid -> commission + email
Order      shipped needs carrier + tracking; cancelled relists every item
           in the same transaction as the status write
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.errors import NotFoundError, SideEffectOutcome, ValidationError
from app.features.lifecycle.engine import EntitySpec, TransitionContext
from app.features.lifecycle.tables import (
    BULK_QUOTE_TRANSITIONS,
    ORDER_STATUSES,
    ORDER_TRANSITIONS,
    QUOTE_TRANSITIONS,
)
from app.features.orders.repo import InventoryRepo
from app.features.partners.ledger import accrue_commission
from app.features.pricing.rounding import normalize_grade, round2

logger = logging.getLogger(__name__)

Doc = Dict[str, Any]


def _require_tracking(payload: Doc) -> None:
    missing = [f for f in ("tracking_carrier", "tracking_number") if not str(payload.get(f) or "").strip()]
    if missing:
        raise ValidationError(
            code=missing[0],
            message="Shipping requires a carrier and a tracking number",
            details={"missing": missing},
        )


def _tracking_fields(payload: Doc) -> Doc:
    return {
        "tracking_carrier": str(payload["tracking_carrier"]).strip(),
        "tracking_number": str(payload["tracking_number"]).strip(),
    }


def _cancel_fields(payload: Doc) -> Doc:
    reason = payload.get("cancel_reason")
    return {"cancel_reason": str(reason)} if reason else {}


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------

async def _quote_pre_check(_ctx: TransitionContext, _doc: Doc, target: str, payload: Doc) -> None:
    if target == "shipped":
        _require_tracking(payload)
    if target == "inspected":
        if payload.get("inspection_grade") is not None:
            normalize_grade(payload["inspection_grade"])
        price = payload.get("revised_price")
        if price is not None and float(price) < 0:
            raise ValidationError(code="revised_price", message="revised_price must be >= 0")


def _quote_fields(_doc: Doc, target: str, payload: Doc) -> Doc:
    if target == "shipped":
        return _tracking_fields(payload)
    if target == "inspected":
        out: Doc = {}
        if payload.get("inspection_grade") is not None:
            out["inspection_grade"] = normalize_grade(payload["inspection_grade"])
        if payload.get("revised_price") is not None:
            out["revised_price"] = round2(payload["revised_price"])
        if payload.get("inspection_notes"):
            out["inspection_notes"] = str(payload["inspection_notes"])
        return out
    if target == "cancelled":
        return _cancel_fields(payload)
    return {}


async def _quote_commission(ctx: TransitionContext, doc: Doc, target: str) -> Optional[SideEffectOutcome]:
    if target != "paid":
        return None
    return await accrue_commission(ctx.db, source_kind="quote", source=doc)


async def _quote_notify(ctx: TransitionContext, doc: Doc, target: str) -> Optional[SideEffectOutcome]:
    if target != "paid" or ctx.notifier is None:
        return None
    return await ctx.notifier.notify_paid(kind="quote", doc=doc)


QUOTE_SPEC = EntitySpec(
    kind="quote",
    collection="quotes",
    table=QUOTE_TRANSITIONS,
    known_statuses=frozenset(QUOTE_TRANSITIONS),
    not_found_code="quote_not_found",
    pre_check=_quote_pre_check,
    extra_fields=_quote_fields,
    post_commit=(("commission", _quote_commission), ("notification", _quote_notify)),
)


# ---------------------------------------------------------------------------
# BulkQuote
# ---------------------------------------------------------------------------

def _bulk_fields(_doc: Doc, target: str, payload: Doc) -> Doc:
    if target == "cancelled":
        return _cancel_fields(payload)
    return {}


async def _bulk_commission(ctx: TransitionContext, doc: Doc, target: str) -> Optional[SideEffectOutcome]:
    if target != "paid":
        return None
    return await accrue_commission(ctx.db, source_kind="bulk_quote", source=doc)


async def _bulk_notify(ctx: TransitionContext, doc: Doc, target: str) -> Optional[SideEffectOutcome]:
    if target != "paid" or ctx.notifier is None:
        return None
    return await ctx.notifier.notify_paid(kind="bulk_quote", doc=doc)


BULK_QUOTE_SPEC = EntitySpec(
    kind="bulk_quote",
    collection="bulk_quotes",
    table=BULK_QUOTE_TRANSITIONS,
    known_statuses=frozenset(BULK_QUOTE_TRANSITIONS),
    not_found_code="bulk_quote_not_found",
    extra_fields=_bulk_fields,
    post_commit=(("commission", _bulk_commission), ("notification", _bulk_notify)),
)


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------

def _order_inventory_ids(doc: Doc) -> List[int]:
    return [int(it["inventory_id"]) for it in doc.get("items") or []]


async def _order_pre_check(ctx: TransitionContext, doc: Doc, target: str, payload: Doc) -> None:
    if target == "shipped":
        _require_tracking(payload)

    if target == "cancelled":
        # Every referenced item must exist before anything is written.
        ids = _order_inventory_ids(doc)
        found = await InventoryRepo(ctx.db).get_many(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(
                code="inventory_not_found",
                message="Order references inventory items that do not exist",
                details={"order_id": doc.get("id"), "inventory_ids": missing},
            )


def _order_fields(_doc: Doc, target: str, payload: Doc) -> Doc:
    if target == "shipped":
        return _tracking_fields(payload)
    if target == "cancelled":
        return _cancel_fields(payload)
    return {}


async def _order_on_commit(
    ctx: TransitionContext,
    doc: Doc,
    target: str,
    session: Optional[AsyncIOMotorClientSession],
) -> None:
    if target != "cancelled":
        return
    ids = _order_inventory_ids(doc)
    relisted = await InventoryRepo(ctx.db).relist_many(ids, session=session)
    logger.info("order_cancel:relisted order_id=%s items=%s relisted=%s", doc.get("id"), len(ids), relisted)


ORDER_SPEC = EntitySpec(
    kind="order",
    collection="orders",
    table=ORDER_TRANSITIONS,
    known_statuses=ORDER_STATUSES,
    not_found_code="order_not_found",
    pre_check=_order_pre_check,
    extra_fields=_order_fields,
    on_commit=_order_on_commit,
)
