from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class QuoteCreate(BaseModel):
    device_id: int
    grade: str
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    partner_code: Optional[str] = None  # mode A referral


class QuoteRead(BaseModel):
    id: str
    status: str
    device_id: int
    device_name: Optional[str] = None
    grade: str
    price: float
    price_list_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    partner_id: Optional[str] = None
    partner_mode: Optional[str] = None
    rate_discount: float = 0.0

    tracking_carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    inspection_grade: Optional[str] = None
    revised_price: Optional[float] = None
    inspection_notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    quoted_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    inspected_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
