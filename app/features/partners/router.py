"""
/partners endpoints:
- CRUD partner
- ledger entries, pending balance, earnings
- payouts (reconciliation)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_db
from app.features.partners.ledger import (
    create_payout,
    earnings,
    list_ledger,
    list_payouts,
    pending_balance,
)
from app.features.partners.schemas import (
    BalanceRead,
    EarningsRead,
    LedgerEntryRead,
    PartnerCreate,
    PartnerRead,
    PartnerUpdate,
    PayoutCreate,
    PayoutRead,
)
from app.features.partners.service import create_partner, get_partner, list_partners, update_partner

router = APIRouter(prefix="/partners", tags=["partners"])


@router.post("", response_model=PartnerRead, status_code=201)
async def create_partner_endpoint(payload: PartnerCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await create_partner(db, payload)


@router.get("", response_model=list[PartnerRead])
async def list_partners_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    return await list_partners(db, status=status, limit=limit)


@router.get("/{partner_id}", response_model=PartnerRead)
async def get_partner_endpoint(partner_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_partner(db, partner_id)


@router.patch("/{partner_id}", response_model=PartnerRead)
async def update_partner_endpoint(partner_id: str, payload: PartnerUpdate, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await update_partner(db, partner_id, payload)


@router.get("/{partner_id}/ledger", response_model=list[LedgerEntryRead])
async def list_ledger_endpoint(
    partner_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    status: str | None = Query(None, pattern="^(pending|paid)$"),
    limit: int = Query(1000, ge=1, le=10000),
):
    return await list_ledger(db, partner_id, status=status, limit=limit)


@router.get("/{partner_id}/balance", response_model=BalanceRead)
async def balance_endpoint(partner_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await pending_balance(db, partner_id)


@router.get("/{partner_id}/earnings", response_model=EarningsRead)
async def earnings_endpoint(partner_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await earnings(db, partner_id)


@router.post("/{partner_id}/payouts", response_model=PayoutRead, status_code=201)
async def create_payout_endpoint(partner_id: str, payload: PayoutCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await create_payout(db, partner_id, payload)


@router.get("/{partner_id}/payouts", response_model=list[PayoutRead])
async def list_payouts_endpoint(
    partner_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    limit: int = Query(100, ge=1, le=1000),
):
    return await list_payouts(db, partner_id, limit=limit)
