"""
Shop API schemas: resale inventory + orders.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class InventoryCreate(BaseModel):
    device_id: int
    grade: str
    price: float = Field(..., ge=0)
    source_quote_id: Optional[str] = None


class InventoryRead(BaseModel):
    inventory_id: int
    device_id: int
    device_name: Optional[str] = None
    grade: str
    price: float
    status: str
    listed: bool
    source_quote_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AddOnItem(BaseModel):
    name: str
    price: float = Field(..., ge=0)


class ShippingAddress(BaseModel):
    name: str
    line1: str
    line2: Optional[str] = None
    city: str
    postcode: str
    country: str = "NZ"


class OrderCreate(BaseModel):
    inventory_ids: List[int] = Field(..., min_length=1)
    add_ons: List[AddOnItem] = Field(default_factory=list)
    shipping: float = Field(0.0, ge=0)
    customer_email: EmailStr
    shipping_address: ShippingAddress


class OrderItem(BaseModel):
    inventory_id: int
    device_id: int
    device_name: Optional[str] = None
    grade: str
    price: float


class PaymentConfirm(BaseModel):
    payment_reference: str = Field(..., min_length=1)


class OrderRead(BaseModel):
    id: str
    status: str
    items: List[OrderItem]
    add_ons: List[AddOnItem] = Field(default_factory=list)
    subtotal: float
    shipping: float
    total: float
    customer_email: str
    shipping_address: ShippingAddress
    payment_reference: Optional[str] = None
    tracking_carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    processing_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
