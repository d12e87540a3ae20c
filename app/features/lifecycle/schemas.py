from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TransitionRequest(BaseModel):
    status: str = Field(min_length=1)

    # shipped
    tracking_carrier: Optional[str] = None
    tracking_number: Optional[str] = None

    # inspected (quotes)
    inspection_grade: Optional[str] = None
    revised_price: Optional[float] = None
    inspection_notes: Optional[str] = None

    # cancelled
    cancel_reason: Optional[str] = None


class SideEffectRead(BaseModel):
    name: str
    ok: bool
    skipped: bool = False
    detail: Optional[str] = None
    error: Optional[str] = None


class TransitionResponse(BaseModel):
    entity: Dict[str, Any]
    previous_status: str
    status: str
    side_effects: List[SideEffectRead] = Field(default_factory=list)
