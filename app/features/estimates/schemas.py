"""
Bulk estimate (BulkQuote + DeviceLine) API schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class ManifestRowIn(BaseModel):
    raw_text: str
    quantity: Optional[int] = Field(None, ge=1)
    grade: Optional[str] = None
    make: Optional[str] = None
    storage: Optional[str] = None


class EstimateMeta(BaseModel):
    business_name: Optional[str] = None
    contact_name: str
    contact_email: EmailStr
    contact_phone: Optional[str] = None
    assumed_grade: Optional[str] = None  # defaults to DEFAULT_ASSUMED_GRADE
    category: Optional[str] = None  # defaults to DEFAULT_CATEGORY
    partner_code: Optional[str] = None  # mode A referral


class EstimateCreate(EstimateMeta):
    rows: List[ManifestRowIn]


class EstimateCsvCreate(EstimateMeta):
    csv_text: str


class DeviceLineRead(BaseModel):
    bulk_quote_id: str
    line_no: int
    raw_input: str
    match_text: Optional[str] = None
    device_id: Optional[int] = None
    device_name: Optional[str] = None
    match_confidence: str
    match_score: float = 0.0
    needs_review: bool = False
    quantity: int
    assumed_grade: str
    unit_price: float
    indicative_price: float
    actual_grade: Optional[str] = None
    actual_price: Optional[float] = None
    inspection_notes: Optional[str] = None


class BulkQuoteRead(BaseModel):
    id: str
    status: str
    business_name: Optional[str] = None
    contact_name: str
    contact_email: str
    contact_phone: Optional[str] = None
    category: str
    assumed_grade: str
    price_list_id: Optional[str] = None
    partner_id: Optional[str] = None
    partner_mode: Optional[str] = None
    rate_discount: float = 0.0
    line_count: int
    total_devices: int
    total_indicative: float
    total_final: Optional[float] = None
    matched_count: int
    unmatched_count: int
    matched_units: int
    created_at: datetime
    updated_at: datetime


class EstimateDetail(BulkQuoteRead):
    lines: List[DeviceLineRead] = Field(default_factory=list)


class LineInspectionUpdate(BaseModel):
    """PATCH model (all optional). actual_price per unit; derived from actual_grade when omitted."""
    actual_grade: Optional[str] = None
    actual_price: Optional[float] = Field(None, ge=0)
    inspection_notes: Optional[str] = None


class LineAssignDevice(BaseModel):
    device_id: int
