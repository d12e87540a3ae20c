"""
Pricing API schemas: price lists, per-category settings, bulk adjust.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class GradePrices(BaseModel):
    """Grade A is required when creating; B..E are derived when omitted."""
    A: Optional[float] = Field(None, ge=0)
    B: Optional[float] = Field(None, ge=0)
    C: Optional[float] = Field(None, ge=0)
    D: Optional[float] = Field(None, ge=0)
    E: Optional[float] = Field(None, ge=0)

    def given(self) -> Dict[str, float]:
        return {g: v for g, v in self.model_dump().items() if v is not None}


class PriceRow(GradePrices):
    """
    One price-sheet row. Either device_id, or make+model(+storage) so that
    unseen devices can be created on ingestion.
    """
    device_id: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    storage: str = ""

    @model_validator(mode="after")
    def _needs_device_ref(self) -> "PriceRow":
        if self.device_id is None and not (self.make and self.model):
            raise ValueError("row needs device_id or make + model")
        return self


class PriceListCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    currency: Optional[str] = None
    effective_date: Optional[str] = None  # ISO date string, informational
    activate: bool = False
    rows: List[PriceRow] = Field(default_factory=list)


class PriceListReplace(BaseModel):
    rows: List[PriceRow]


class PriceListRead(BaseModel):
    id: str
    name: str
    category: str
    currency: str
    effective_date: Optional[str] = None
    device_count: int = 0
    active: bool = False
    created_at: datetime
    updated_at: datetime


class DevicePrices(BaseModel):
    device_id: int
    prices: Dict[str, float]


class PriceListDetail(PriceListRead):
    prices: List[DevicePrices] = Field(default_factory=list)


class IngestResult(BaseModel):
    price_list: PriceListRead
    rows_written: int
    devices_created: int


class PriceQuoteRead(BaseModel):
    price_list_id: str
    device_id: int
    grade: str
    price: float


class PricingSettingsRead(BaseModel):
    category: str
    rounding: float
    grade_ratios: Dict[str, float]
    active_price_list_id: Optional[str] = None


class PricingSettingsUpdate(BaseModel):
    """PATCH model (all optional)."""
    rounding: Optional[float] = Field(None, ge=0)
    grade_ratios: Optional[Dict[Literal["B", "C", "D", "E"], float]] = None


class BulkAdjustRequest(BaseModel):
    operation: Literal["percent", "dollar", "set_ratios"]
    # None => every device in the list
    device_ids: Optional[List[int]] = None
    value: Optional[float] = None


class BulkAdjustResult(BaseModel):
    price_list_id: str
    operation: str
    requested: int
    updated: int


class SnapshotRead(BaseModel):
    id: str
    price_list_id: str
    reason: str
    device_count: int
    created_at: datetime
