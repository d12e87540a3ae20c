"""Tests for the pure estimate pipeline (match + price + aggregate)."""

import pytest

from app.core.errors import ValidationError
from app.features.estimates.manifest import ManifestRow
from app.features.estimates.pipeline import CONSUMER_RATE, RateContext, build_estimate
from app.features.matching.matcher import CandidateDevice, MatchThresholds
from app.features.matching.service import MatchContext
from app.features.pricing.rounding import grade_price

CTX = MatchContext(
    candidates=[
        CandidateDevice(1, "Apple", "iPhone 13 Pro", "256GB"),
        CandidateDevice(5, "Google", "Pixel 7", "128GB"),
        CandidateDevice(6, "Google", "Pixel 7", "256GB"),
    ],
    alias_index={"ip13p": 1},
    thresholds=MatchThresholds(),
)

PRICES = {1: {"A": 500}}


def _lookup(device_id, grade):
    grades = PRICES.get(device_id)
    return grade_price(grades, grade) if grades else None


ROWS = [
    ManifestRow(1, "Apple iPhone 13 Pro 256GB x2"),
    ManifestRow(2, "google pixel 7", grade="A"),
    ManifestRow(3, "mystery gadget"),
    ManifestRow(4, "ip13p", quantity=3),
]


def _build(rows=ROWS, rate=CONSUMER_RATE, grade="C"):
    return build_estimate(rows, assumed_grade=grade, category="Phone", rate=rate, match_ctx=CTX, prices=_lookup)


def test_lines_are_matched_priced_and_counted():
    result = _build()
    by_no = {ln.line_no: ln for ln in result.lines}

    assert by_no[1].device_id == 1
    assert by_no[1].match_confidence == "medium"
    assert (by_no[1].quantity, by_no[1].assumed_grade, by_no[1].unit_price, by_no[1].indicative_price) == (
        2,
        "C",
        200.0,
        400.0,
    )

    # Ambiguous Pixel: kept as a low-confidence match, no price in the list.
    assert by_no[2].device_id == 5
    assert by_no[2].match_confidence == "low"
    assert by_no[2].needs_review
    assert by_no[2].unit_price == 0.0
    assert not by_no[2].priced

    assert by_no[3].device_id is None
    assert by_no[3].match_confidence == "manual"

    assert by_no[4].match_confidence == "high"
    assert by_no[4].indicative_price == 600.0


def test_aggregates():
    result = _build()
    assert result.line_count == 4
    assert result.total_devices == 7
    assert result.total_indicative == 1000.0
    assert result.matched_count == 3
    assert result.unmatched_count == 1
    assert result.matched_units == 6


def test_partner_rate_discounts_unit_prices():
    result = _build(rate=RateContext(discount_percent=10))
    assert result.lines[0].unit_price == 180.0
    assert result.total_indicative == 900.0


def test_row_grade_overrides_assumed_grade():
    result = _build(rows=[ManifestRow(1, "ip13p", grade="b")])
    assert result.lines[0].assumed_grade == "B"
    assert result.lines[0].unit_price == 350.0


def test_bad_row_grade_reports_line():
    with pytest.raises(ValidationError) as exc:
        _build(rows=[ManifestRow(1, "ip13p"), ManifestRow(2, "ip13p", grade="Z")])
    assert exc.value.code == "grade"
    assert exc.value.details["line_no"] == 2


def test_empty_manifest_is_rejected():
    with pytest.raises(ValidationError) as exc:
        _build(rows=[])
    assert exc.value.code == "manifest"
