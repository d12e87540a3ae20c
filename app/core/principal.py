# app/core/principal.py
"""
Caller identity, as asserted by the gateway in front of this service.

The engine never checks credentials. It only reads who the caller is:

  X-Principal-Id      partner id (partners) or user id
  X-Principal-Email
  X-Principal-Role    consumer | partner | admin
  X-Principal-Modes   "A", "B" or "A,B" (partners only)

No headers => anonymous consumer (None).
"""

from __future__ import annotations

from typing import FrozenSet, Optional

from fastapi import Request
from pydantic import BaseModel


class Principal(BaseModel):
    id: str
    email: Optional[str] = None
    role: str = "consumer"
    modes: FrozenSet[str] = frozenset()

    @property
    def is_partner(self) -> bool:
        return self.role == "partner"


def _parse_modes(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(m.strip().upper() for m in raw.split(",") if m.strip().upper() in {"A", "B"})


async def get_principal(request: Request) -> Optional[Principal]:
    pid = (request.headers.get("x-principal-id") or "").strip()
    if not pid:
        return None

    return Principal(
        id=pid,
        email=(request.headers.get("x-principal-email") or "").strip() or None,
        role=(request.headers.get("x-principal-role") or "consumer").strip().lower(),
        modes=_parse_modes(request.headers.get("x-principal-modes")),
    )
