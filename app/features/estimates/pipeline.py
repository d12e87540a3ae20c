# app/features/estimates/pipeline.py
"""
Bulk Estimate Pipeline (pure part).

manifest rows -> matched + priced + aggregated lines, no I/O. The service
loads the match context and the active price list once and persists the
result.

Per row:
  text, quantity  = row.match_input()         (explicit qty > "x2" suffix > 1)
  match_text      = that text; a line correction stores its alias under it
  grade           = row grade or the manifest's assumed grade
  match           = matcher (alias first, then token scoring)
  unit_price      = price list price for (device, grade) through the rate
                    context; 0 when the device has no price
  indicative      = quantity * unit_price

A line counts as matched whenever it carries a device id, even at "low"
confidence or with no price.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from app.core.errors import ValidationError
from app.features.estimates.manifest import ManifestRow
from app.features.matching.service import MatchContext
from app.features.pricing.rounding import apply_rate_discount, normalize_grade, round2

PriceLookup = Callable[[int, str], Optional[float]]


@dataclass(frozen=True)
class RateContext:
    """Consumer: identity. Mode-B partner: list price less the partner discount."""

    discount_percent: float = 0.0

    def apply(self, price: float) -> float:
        if not self.discount_percent:
            return round2(price)
        return apply_rate_discount(price, self.discount_percent)


CONSUMER_RATE = RateContext()


@dataclass
class EstimateLine:
    line_no: int
    raw_input: str
    match_text: str
    device_id: Optional[int]
    device_name: Optional[str]
    match_confidence: str
    match_score: float
    needs_review: bool
    quantity: int
    assumed_grade: str
    unit_price: float
    indicative_price: float
    priced: bool


@dataclass
class EstimateResult:
    lines: List[EstimateLine] = field(default_factory=list)
    total_devices: int = 0
    total_indicative: float = 0.0
    matched_count: int = 0
    unmatched_count: int = 0
    matched_units: int = 0

    @property
    def line_count(self) -> int:
        return len(self.lines)


def price_line(
    device_id: Optional[int],
    grade: str,
    quantity: int,
    prices: PriceLookup,
    rate: RateContext,
) -> tuple[float, float, bool]:
    """(unit_price, indicative_price, priced)"""
    if device_id is None:
        return 0.0, 0.0, False
    base = prices(int(device_id), grade)
    if base is None:
        return 0.0, 0.0, False
    unit = rate.apply(base)
    return unit, round2(unit * quantity), True


def summarize(result: EstimateResult) -> EstimateResult:
    """Recompute the aggregate counters from the lines."""
    result.total_devices = sum(l.quantity for l in result.lines)
    result.total_indicative = round2(sum(l.indicative_price for l in result.lines))
    result.matched_count = sum(1 for l in result.lines if l.device_id is not None)
    result.unmatched_count = result.line_count - result.matched_count
    result.matched_units = sum(l.quantity for l in result.lines if l.device_id is not None)
    return result


def build_estimate(
    rows: Sequence[ManifestRow],
    *,
    assumed_grade: str,
    category: Optional[str],
    rate: RateContext,
    match_ctx: MatchContext,
    prices: PriceLookup,
) -> EstimateResult:
    if not rows:
        raise ValidationError(code="manifest", message="Manifest has no parsable rows")

    default_grade = normalize_grade(assumed_grade)
    result = EstimateResult()

    for row in rows:
        try:
            grade = normalize_grade(row.grade) if row.grade else default_grade
        except ValidationError as exc:
            exc.details = {**(exc.details or {}), "line_no": row.line_no}
            raise

        text, quantity = row.match_input()
        m = match_ctx.match(text, category=category)
        unit, indicative, priced = price_line(m.device_id, grade, quantity, prices, rate)

        result.lines.append(
            EstimateLine(
                line_no=row.line_no,
                raw_input=row.raw_text,
                match_text=text,
                device_id=m.device_id,
                device_name=m.device_name,
                match_confidence=m.confidence.value,
                match_score=round(m.score, 4),
                needs_review=m.needs_review,
                quantity=quantity,
                assumed_grade=grade,
                unit_price=unit,
                indicative_price=indicative,
                priced=priced,
            )
        )

    return summarize(result)
