# app/features/partners/ledger.py
"""
Commission Ledger.

accrue_commission() is the post-commit hook for Quote/BulkQuote -> "paid".
It never raises for business reasons: every "no entry" case comes back as a
skipped SideEffectOutcome with the reason in `detail`. Store failures do
raise; the lifecycle engine turns them into a best-effort outcome.

Idempotency: the unique index on (partner_id, source_kind, source_id) means
a replayed "paid" can never produce a second entry.

Tiered volume is counted per calendar month ("period" = "YYYY-MM", UTC) over
the partner's ledger entries, plus the devices of the entry being accrued.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConflictError, NotFoundError, SideEffectOutcome
from app.db.mongo import run_in_transaction
from app.features.partners.commission import compute_commission, current_period, source_totals
from app.features.partners.repo import LedgerRepo, PartnersRepo, PayoutsRepo
from app.features.partners.schemas import (
    BalanceRead,
    EarningsRead,
    LedgerEntryRead,
    PayoutCreate,
    PayoutRead,
    SettlementRead,
)
from app.features.pricing.rounding import round2

logger = logging.getLogger(__name__)

SIDE_EFFECT = "commission"


async def accrue_commission(db: AsyncIOMotorDatabase, *, source_kind: str, source: Dict[str, Any]) -> SideEffectOutcome:
    source_id = str(source.get("id"))
    partner_id = source.get("partner_id")

    def _skip(reason: str) -> SideEffectOutcome:
        logger.info(
            "accrue_commission:skip kind=%s source_id=%s partner_id=%s reason=%s",
            source_kind,
            source_id,
            partner_id,
            reason,
        )
        return SideEffectOutcome(name=SIDE_EFFECT, skipped=True, detail=reason)

    if not partner_id:
        return _skip("no_partner")
    if source.get("partner_mode") != "A":
        # Mode B: the paid quote is the settlement.
        return _skip("not_mode_a")

    partner = await PartnersRepo(db).get(str(partner_id))
    if not partner:
        return _skip("partner_not_found")
    if partner.get("status") != "active":
        return _skip("partner_inactive")
    if "A" not in (partner.get("modes") or []):
        return _skip("partner_not_mode_a")

    ledger = LedgerRepo(db)
    if await ledger.get_for_source(str(partner_id), source_kind, source_id):
        return _skip("already_accrued")

    quote_total, device_count = source_totals(source_kind, source)
    period = current_period()
    volume = await ledger.period_device_count(str(partner_id), period) + device_count

    amount = compute_commission(
        partner,
        quote_total=quote_total,
        device_count=device_count,
        monthly_volume=volume,
    )
    if amount <= 0:
        return _skip("non_positive_amount")

    try:
        entry = await ledger.insert(
            {
                "partner_id": str(partner_id),
                "source_kind": source_kind,
                "source_id": source_id,
                "device_count": device_count,
                "quote_total": round2(quote_total),
                "commission_amount": amount,
                "period": period,
            }
        )
    except DuplicateKeyError:
        # Lost a race with a concurrent accrual for the same source.
        return _skip("already_accrued")

    logger.info(
        "accrue_commission:done kind=%s source_id=%s partner_id=%s amount=%s model=%s",
        source_kind,
        source_id,
        partner_id,
        amount,
        partner.get("commission_model"),
    )
    return SideEffectOutcome(name=SIDE_EFFECT, detail=f"entry={entry['id']} amount={amount}")


async def _require_partner(db: AsyncIOMotorDatabase, partner_id: str) -> Dict[str, Any]:
    partner = await PartnersRepo(db).get(partner_id)
    if not partner:
        raise NotFoundError(code="partner_not_found", message="Partner not found", details={"partner_id": partner_id})
    return partner


async def list_ledger(
    db: AsyncIOMotorDatabase,
    partner_id: str,
    *,
    status: Optional[str] = None,
    limit: int = 1000,
) -> list[LedgerEntryRead]:
    await _require_partner(db, partner_id)
    docs = await LedgerRepo(db).list(partner_id, status=status, limit=limit)
    return [LedgerEntryRead(**d) for d in docs]


async def pending_balance(db: AsyncIOMotorDatabase, partner_id: str) -> BalanceRead:
    await _require_partner(db, partner_id)
    docs = await LedgerRepo(db).list(partner_id, status="pending", limit=100000)
    return BalanceRead(
        partner_id=partner_id,
        pending_total=round2(sum(float(d.get("commission_amount") or 0) for d in docs)),
        pending_count=len(docs),
    )


async def create_payout(db: AsyncIOMotorDatabase, partner_id: str, data: PayoutCreate) -> PayoutRead:
    await _require_partner(db, partner_id)
    ledger = LedgerRepo(db)

    if data.ledger_entry_ids is None:
        wanted = [d["id"] for d in await ledger.list(partner_id, status="pending", limit=100000)]
    else:
        wanted = sorted(set(data.ledger_entry_ids))

    if not wanted:
        raise ConflictError(code="nothing_to_pay", message="No pending ledger entries", details={"partner_id": partner_id})

    payout_id = str(uuid4())

    async def _txn(session: Optional[AsyncIOMotorClientSession]) -> Dict[str, Any]:
        claimed = await ledger.claim_for_payout(
            partner_id=partner_id,
            entry_ids=wanted,
            payout_id=payout_id,
            session=session,
        )
        if not claimed:
            raise ConflictError(
                code="nothing_to_pay",
                message="Requested entries are not pending (already paid or unknown)",
                details={"partner_id": partner_id, "requested": len(wanted)},
            )

        return await PayoutsRepo(db).insert(
            {
                "id": payout_id,
                "partner_id": partner_id,
                "amount": round2(sum(float(e.get("commission_amount") or 0) for e in claimed)),
                "ledger_entry_ids": sorted(e["id"] for e in claimed),
                "reference": data.reference,
                "payment_method": data.payment_method,
            },
            session=session,
        )

    doc = await run_in_transaction(db, _txn)
    logger.info(
        "create_payout partner_id=%s payout_id=%s amount=%s entries=%s requested=%s",
        partner_id,
        payout_id,
        doc["amount"],
        len(doc["ledger_entry_ids"]),
        len(wanted),
    )
    return PayoutRead(**doc)


async def list_payouts(db: AsyncIOMotorDatabase, partner_id: str, limit: int = 100) -> list[PayoutRead]:
    await _require_partner(db, partner_id)
    return [PayoutRead(**d) for d in await PayoutsRepo(db).list(partner_id, limit=limit)]


async def _mode_b_settlements(db: AsyncIOMotorDatabase, partner_id: str) -> List[SettlementRead]:
    out: List[SettlementRead] = []
    q = {"partner_id": partner_id, "partner_mode": "B", "status": "paid"}

    async for d in db["quotes"].find(q, {"_id": 0}):
        total, _ = source_totals("quote", d)
        out.append(SettlementRead(source_kind="quote", source_id=d["id"], amount=round2(total), paid_at=d.get("paid_at")))

    async for d in db["bulk_quotes"].find(q, {"_id": 0}):
        total, _ = source_totals("bulk_quote", d)
        out.append(
            SettlementRead(source_kind="bulk_quote", source_id=d["id"], amount=round2(total), paid_at=d.get("paid_at"))
        )

    return out


async def earnings(db: AsyncIOMotorDatabase, partner_id: str) -> EarningsRead:
    partner = await _require_partner(db, partner_id)
    entries = await LedgerRepo(db).list(partner_id, limit=100000)
    settlements = await _mode_b_settlements(db, partner_id)

    pending = sum(float(e.get("commission_amount") or 0) for e in entries if e.get("status") == "pending")
    paid = sum(float(e.get("commission_amount") or 0) for e in entries if e.get("status") == "paid")

    return EarningsRead(
        partner_id=partner_id,
        modes=list(partner.get("modes") or []),
        commission_pending=round2(pending),
        commission_paid=round2(paid),
        settlements_total=round2(sum(s.amount for s in settlements)),
        entries=[LedgerEntryRead(**e) for e in entries],
        settlements=settlements,
    )
