"""Tests for mode-A commission arithmetic."""

from datetime import datetime, timezone

import pytest

from app.features.partners.commission import compute_commission, current_period, source_totals, tier_rate

TIERS = [
    {"min_qty": 0, "rate": 3},
    {"min_qty": 10, "rate": 5},
    {"min_qty": 50, "rate": 8},
]


def test_percentage_defaults_to_five_percent():
    assert compute_commission({}, quote_total=1000, device_count=1) == 50.0
    assert compute_commission({"commission_percent": 7.5}, quote_total=200, device_count=1) == 15.0


def test_flat_is_per_device():
    partner = {"commission_model": "flat", "commission_flat": 7.5}
    assert compute_commission(partner, quote_total=999, device_count=3) == 22.5


@pytest.mark.parametrize("volume, expected", [(0, 6.0), (12, 10.0), (60, 16.0)])
def test_tiered_uses_highest_reached_tier(volume, expected):
    partner = {"commission_model": "tiered", "commission_tiers": TIERS}
    assert compute_commission(partner, quote_total=200, device_count=1, monthly_volume=volume) == expected


def test_tiered_falls_back_to_percent_below_first_tier():
    partner = {
        "commission_model": "tiered",
        "commission_percent": 4,
        "commission_tiers": [{"min_qty": 10, "rate": 5}],
    }
    assert compute_commission(partner, quote_total=200, device_count=1, monthly_volume=2) == 8.0


def test_tier_rate_without_tiers():
    assert tier_rate(None, 100) is None
    assert tier_rate([], 100) is None


def test_source_totals_quote_prefers_revised_price():
    assert source_totals("quote", {"price": 200, "revised_price": 180}) == (180.0, 1)
    assert source_totals("quote", {"price": 200, "revised_price": None}) == (200.0, 1)
    assert source_totals("quote", {"price": 200, "revised_price": 0}) == (0.0, 1)


def test_source_totals_bulk_quote_prefers_final_total():
    doc = {"total_final": None, "total_indicative": 900, "matched_units": 7}
    assert source_totals("bulk_quote", doc) == (900.0, 7)
    doc["total_final"] = 850
    assert source_totals("bulk_quote", doc) == (850.0, 7)


def test_current_period():
    assert current_period(datetime(2026, 3, 5, tzinfo=timezone.utc)) == "2026-03"
