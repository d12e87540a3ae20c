# app/features/partners/commission.py
"""
Mode-A commission arithmetic (pure).

percentage  quote_total * commission_percent / 100
flat        commission_flat * device_count
tiered      quote_total * rate / 100, rate from the highest tier whose
            min_qty <= monthly volume; no tier reached -> commission_percent

Result is rounded to cents. A quote counts as one device at its revised
price (or quoted price); a bulk quote counts its matched units at the final
total (or indicative total).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Tuple

from app.features.pricing.rounding import round2

DEFAULT_COMMISSION_PERCENT = 5.0
DEFAULT_COMMISSION_FLAT = 5.0

COMMISSION_MODELS = ("percentage", "flat", "tiered")


def current_period(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


def source_totals(source_kind: str, doc: Mapping[str, Any]) -> Tuple[float, int]:
    """(quote_total, device_count) the commission is computed on."""
    if source_kind == "quote":
        total = doc.get("revised_price")
        if total is None:
            total = doc.get("price")
        return float(total or 0), 1

    total = doc.get("total_final")
    if total is None:
        total = doc.get("total_indicative")
    return float(total or 0), int(doc.get("matched_units") or 0)


def tier_rate(tiers: Optional[Iterable[Mapping[str, Any]]], volume: int) -> Optional[float]:
    best_min = -1
    best_rate: Optional[float] = None
    for t in tiers or ():
        min_qty = int(t.get("min_qty") or 0)
        if min_qty <= volume and min_qty > best_min:
            best_min = min_qty
            best_rate = float(t.get("rate") or 0)
    return best_rate


def compute_commission(
    partner: Mapping[str, Any],
    *,
    quote_total: float,
    device_count: int,
    monthly_volume: int = 0,
) -> float:
    model = partner.get("commission_model") or "percentage"
    percent = partner.get("commission_percent")
    percent = DEFAULT_COMMISSION_PERCENT if percent is None else float(percent)

    if model == "flat":
        fee = partner.get("commission_flat")
        fee = DEFAULT_COMMISSION_FLAT if fee is None else float(fee)
        return round2(fee * int(device_count))

    if model == "tiered":
        rate = tier_rate(partner.get("commission_tiers"), int(monthly_volume))
        return round2(float(quote_total) * (percent if rate is None else rate) / 100)

    return round2(float(quote_total) * percent / 100)
