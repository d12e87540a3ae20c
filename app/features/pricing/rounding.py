# app/features/pricing/rounding.py
"""
Pure grade-price arithmetic.

Grade A is the authoritative price of a device in a price list. B..E are
either stored explicitly or derived as a percentage of A:

    B = round_price(A * ratio_B / 100, rounding_unit)

Money math goes through Decimal with ROUND_HALF_UP so 2.5 -> 3 and
0.125 -> 0.13, the same as a spreadsheet would show.

No Motor/PyMongo here: the estimate pipeline and the bulk adjuster both call
into this module with preloaded data.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional

from app.core.errors import ValidationError

GRADES = ("A", "B", "C", "D", "E")
DERIVED_GRADES = GRADES[1:]

# % of grade A
DEFAULT_GRADE_RATIOS: Dict[str, float] = {"B": 70.0, "C": 40.0, "D": 20.0, "E": 10.0}
DEFAULT_ROUNDING = 5.0

ADJUST_OPERATIONS = ("percent", "dollar", "set_ratios")

_CENTS = Decimal("0.01")


def _dec(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(code="price", message=f"Not a number: {value!r}") from exc


def normalize_grade(grade: Optional[str]) -> str:
    g = str(grade or "").strip().upper()
    if g not in GRADES:
        raise ValidationError(
            code="grade",
            message=f"Unknown grade {grade!r}",
            details={"grade": grade, "allowed": list(GRADES)},
        )
    return g


def round2(value: Any) -> float:
    return float(_dec(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def round_price(value: Any, unit: Any = DEFAULT_ROUNDING) -> float:
    """Nearest multiple of `unit`, half up, never negative. unit <= 0 rounds to cents."""
    v = _dec(value)
    u = _dec(unit)
    if u <= 0:
        out = v.quantize(_CENTS, rounding=ROUND_HALF_UP)
    else:
        out = (v / u).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * u
    if out < 0:
        out = Decimal("0")
    return float(out.quantize(_CENTS, rounding=ROUND_HALF_UP))


def merged_ratios(ratios: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    out = dict(DEFAULT_GRADE_RATIOS)
    for g, v in (ratios or {}).items():
        key = str(g).upper()
        if key in DERIVED_GRADES and v is not None:
            out[key] = float(v)
    return out


def derive_ratios(
    grade_a_price: Any,
    ratios: Optional[Mapping[str, Any]] = None,
    rounding: Any = DEFAULT_ROUNDING,
) -> Dict[str, float]:
    """{B..E} from the grade A price. Deterministic for equal inputs."""
    a = _dec(grade_a_price)
    r = merged_ratios(ratios)
    return {g: round_price(a * _dec(r[g]) / Decimal(100), rounding) for g in DERIVED_GRADES}


def complete_grades(
    prices: Mapping[str, Any],
    ratios: Optional[Mapping[str, Any]] = None,
    rounding: Any = DEFAULT_ROUNDING,
) -> Dict[str, float]:
    """
    Fill in missing B..E from A. Explicit values are kept (rounded).

    A is required: a row with no grade A price cannot be priced.
    """
    given = {str(k).upper(): v for k, v in prices.items() if v is not None}
    if "A" not in given:
        raise ValidationError(code="grade_a", message="Grade A price is required")

    a = round_price(given["A"], rounding)
    derived = derive_ratios(a, ratios, rounding)

    out: Dict[str, float] = {"A": a}
    for g in DERIVED_GRADES:
        out[g] = round_price(given[g], rounding) if g in given else derived[g]
    return out


def grade_price(
    prices: Mapping[str, Any],
    grade: str,
    ratios: Optional[Mapping[str, Any]] = None,
    rounding: Any = DEFAULT_ROUNDING,
) -> Optional[float]:
    """Stored price for `grade`, else derived from A, else None."""
    g = normalize_grade(grade)
    stored = prices.get(g)
    if stored is not None:
        return float(stored)
    a = prices.get("A")
    if a is None:
        return None
    if g == "A":
        return float(a)
    return derive_ratios(a, ratios, rounding)[g]


def adjust_grades(
    prices: Mapping[str, Any],
    operation: str,
    value: Optional[float],
    ratios: Optional[Mapping[str, Any]] = None,
    rounding: Any = DEFAULT_ROUNDING,
) -> Dict[str, float]:
    """
    percent:    every grade * (1 + value/100)
    dollar:     every grade + value
    set_ratios: A kept (or set to `value` when given), B..E re-derived from the new A
    """
    current = complete_grades(prices, ratios, rounding)

    if operation == "percent":
        if value is None:
            raise ValidationError(code="value", message="percent adjustment needs a value")
        factor = Decimal(1) + _dec(value) / Decimal(100)
        return {g: round_price(_dec(p) * factor, rounding) for g, p in current.items()}

    if operation == "dollar":
        if value is None:
            raise ValidationError(code="value", message="dollar adjustment needs a value")
        delta = _dec(value)
        return {g: round_price(_dec(p) + delta, rounding) for g, p in current.items()}

    if operation == "set_ratios":
        a = round_price(value if value is not None else current["A"], rounding)
        return {"A": a, **derive_ratios(a, ratios, rounding)}

    raise ValidationError(
        code="operation",
        message=f"Unknown adjustment {operation!r}",
        details={"allowed": list(ADJUST_OPERATIONS)},
    )


def apply_rate_discount(price: Any, discount_percent: Any) -> float:
    """Partner (mode B) rate: price * (1 - discount/100), to the cent."""
    d = _dec(discount_percent or 0)
    return round2(_dec(price) * (Decimal(1) - d / Decimal(100)))
