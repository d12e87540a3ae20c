"""
Partner API schemas.

A partner is a business that either refers customers (mode A, earns
commission on paid quotes) or trades devices in itself at a discounted rate
(mode B, settlement is the paid quote itself). Some partners do both.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

PartnerMode = Literal["A", "B"]
CommissionModel = Literal["percentage", "flat", "tiered"]


class CommissionTier(BaseModel):
    min_qty: int = Field(..., ge=0)
    rate: float = Field(..., ge=0, le=100)  # percent


class PartnerBase(BaseModel):
    code: str = Field(..., min_length=2, max_length=32)
    name: str
    email: EmailStr
    modes: List[PartnerMode] = Field(default_factory=lambda: ["A"])

    commission_model: CommissionModel = "percentage"
    commission_percent: float = Field(5.0, ge=0, le=100)
    commission_flat: float = Field(5.0, ge=0)
    commission_tiers: List[CommissionTier] = Field(default_factory=list)
    payout_frequency: Literal["weekly", "monthly", "manual"] = "monthly"

    # Mode B: % off the active price list
    rate_discount: float = Field(10.0, ge=0, le=100)


class PartnerCreate(PartnerBase):
    pass


class PartnerUpdate(BaseModel):
    """PATCH model (all optional)."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    status: Optional[Literal["active", "suspended"]] = None
    modes: Optional[List[PartnerMode]] = None
    commission_model: Optional[CommissionModel] = None
    commission_percent: Optional[float] = Field(None, ge=0, le=100)
    commission_flat: Optional[float] = Field(None, ge=0)
    commission_tiers: Optional[List[CommissionTier]] = None
    payout_frequency: Optional[Literal["weekly", "monthly", "manual"]] = None
    rate_discount: Optional[float] = Field(None, ge=0, le=100)


class PartnerRead(PartnerBase):
    id: str
    status: Literal["active", "suspended"] = "active"
    created_at: datetime
    updated_at: datetime


class LedgerEntryRead(BaseModel):
    id: str
    partner_id: str
    source_kind: Literal["quote", "bulk_quote"]
    source_id: str
    device_count: int
    quote_total: float
    commission_amount: float
    status: Literal["pending", "paid"]
    period: str
    created_at: datetime
    paid_at: Optional[datetime] = None
    payout_id: Optional[str] = None


class BalanceRead(BaseModel):
    partner_id: str
    pending_total: float
    pending_count: int


class PayoutCreate(BaseModel):
    # None => every pending entry of the partner
    ledger_entry_ids: Optional[List[str]] = None
    reference: Optional[str] = None
    payment_method: str = "bank_transfer"


class PayoutRead(BaseModel):
    id: str
    partner_id: str
    amount: float
    ledger_entry_ids: List[str]
    reference: Optional[str] = None
    payment_method: str
    created_at: datetime


class SettlementRead(BaseModel):
    source_kind: Literal["quote", "bulk_quote"]
    source_id: str
    amount: float
    paid_at: Optional[datetime] = None


class EarningsRead(BaseModel):
    partner_id: str
    modes: List[PartnerMode]
    commission_pending: float
    commission_paid: float
    settlements_total: float
    entries: List[LedgerEntryRead]
    settlements: List[SettlementRead]
