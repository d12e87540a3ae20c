"""Tests for grade-price arithmetic."""

import pytest

from app.core.errors import ValidationError
from app.features.pricing.rounding import (
    adjust_grades,
    apply_rate_discount,
    complete_grades,
    derive_ratios,
    grade_price,
    normalize_grade,
    round2,
    round_price,
)


@pytest.mark.parametrize(
    "value, unit, expected",
    [
        (2.5, 1, 3.0),
        (347, 5, 345.0),
        (347.5, 5, 350.0),
        (0.125, 0, 0.13),
        (-3, 5, 0.0),
        (1234.5, 10, 1230.0),
    ],
)
def test_round_price(value, unit, expected):
    assert round_price(value, unit) == expected


def test_round2_is_half_up():
    assert round2(0.125) == 0.13
    assert round2(2.675) == 2.68


def test_normalize_grade():
    assert normalize_grade(" b ") == "B"
    with pytest.raises(ValidationError) as exc:
        normalize_grade("F")
    assert exc.value.code == "grade"


def test_derive_ratios_defaults():
    assert derive_ratios(500) == {"B": 350.0, "C": 200.0, "D": 100.0, "E": 50.0}


def test_derive_ratios_rounds_to_unit():
    assert derive_ratios(333, rounding=5) == {"B": 235.0, "C": 135.0, "D": 65.0, "E": 35.0}


def test_complete_grades_keeps_explicit_values():
    assert complete_grades({"A": 500, "C": 210}) == {"A": 500.0, "B": 350.0, "C": 210.0, "D": 100.0, "E": 50.0}


def test_complete_grades_requires_grade_a():
    with pytest.raises(ValidationError) as exc:
        complete_grades({"B": 100})
    assert exc.value.code == "grade_a"


def test_grade_price_prefers_stored_then_derives():
    assert grade_price({"A": 500, "B": 333}, "B") == 333.0
    assert grade_price({"A": 500}, "c") == 200.0
    assert grade_price({"A": 500}, "A") == 500.0
    assert grade_price({}, "B") is None


def test_adjust_percent():
    assert adjust_grades({"A": 500}, "percent", 10) == {
        "A": 550.0,
        "B": 385.0,
        "C": 220.0,
        "D": 110.0,
        "E": 55.0,
    }


def test_adjust_dollar():
    assert adjust_grades({"A": 500}, "dollar", -20) == {
        "A": 480.0,
        "B": 330.0,
        "C": 180.0,
        "D": 80.0,
        "E": 30.0,
    }


def test_adjust_set_ratios_rederives_from_new_a():
    out = adjust_grades({"A": 500, "B": 400}, "set_ratios", 600, ratios={"B": 80})
    assert out == {"A": 600.0, "B": 480.0, "C": 240.0, "D": 120.0, "E": 60.0}


def test_adjust_set_ratios_without_value_keeps_a():
    out = adjust_grades({"A": 500, "B": 400}, "set_ratios", None)
    assert out["A"] == 500.0
    assert out["B"] == 350.0


def test_adjust_rejects_missing_value_and_unknown_operation():
    with pytest.raises(ValidationError) as exc:
        adjust_grades({"A": 500}, "percent", None)
    assert exc.value.code == "value"

    with pytest.raises(ValidationError) as exc:
        adjust_grades({"A": 500}, "halve", 1)
    assert exc.value.code == "operation"


def test_apply_rate_discount():
    assert apply_rate_discount(500, 10) == 450.0
    assert apply_rate_discount(199.99, 12.5) == 174.99
    assert apply_rate_discount(500, 0) == 500.0
