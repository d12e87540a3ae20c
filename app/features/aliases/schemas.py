from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AliasCreate(BaseModel):
    raw_text: str = Field(..., min_length=1)
    device_id: int
    created_by: Literal["auto", "admin"] = "admin"


class AliasRead(BaseModel):
    alias: str
    device_id: int
    created_by: Literal["auto", "admin"]
    created_at: datetime
    updated_at: datetime
