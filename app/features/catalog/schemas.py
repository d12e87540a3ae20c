"""
Device catalog API schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DeviceBase(BaseModel):
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    storage: str = ""
    category: Optional[str] = None  # defaults to DEFAULT_CATEGORY


class DeviceCreate(DeviceBase):
    pass


class DeviceUpdate(BaseModel):
    """PATCH model (all optional)."""
    active: Optional[bool] = None
    category: Optional[str] = None


class DeviceRead(BaseModel):
    device_id: int
    make: str
    model: str
    storage: str = ""
    category: str
    name: str
    active: bool = True
    created_at: datetime
    updated_at: datetime
