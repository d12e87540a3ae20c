"""Tests for manifest parsing."""

from app.features.estimates.manifest import ManifestRow, parse_manifest_csv, parse_quantity, rows_from_payload


def test_csv_with_header_any_column_order():
    text = 'Grade,Device,Qty\nB,"iPhone 13 Pro, 256GB",2\n,Pixel 7 x3,\n,,5\n'
    rows = parse_manifest_csv(text)

    assert [r.line_no for r in rows] == [1, 2]
    assert rows[0].raw_text == "iPhone 13 Pro, 256GB"
    assert rows[0].quantity == 2
    assert rows[0].grade == "B"
    assert rows[1].raw_text == "Pixel 7 x3"
    assert rows[1].quantity is None
    assert rows[1].grade is None


def test_csv_byte_order_mark_is_ignored():
    rows = parse_manifest_csv("\ufeffModel,Quantity\niPhone 13,4\n")
    assert len(rows) == 1
    assert rows[0].raw_text == "iPhone 13"
    assert rows[0].quantity == 4


def test_csv_without_header_uses_first_two_columns():
    rows = parse_manifest_csv("iPhone 13 128GB,3\nGalaxy S23\n")
    assert [(r.raw_text, r.quantity) for r in rows] == [("iPhone 13 128GB", 3), ("Galaxy S23", None)]


def test_csv_make_and_storage_columns_fold_into_match_text():
    rows = parse_manifest_csv("Brand,Model,Capacity,Units\nApple,iPhone 13,128,2\n")
    assert rows[0].make == "Apple"
    assert rows[0].storage == "128"
    assert rows[0].match_input() == ("Apple iPhone 13 128GB", 2)


def test_match_input_does_not_repeat_make_or_storage():
    row = ManifestRow(line_no=1, raw_text="Apple iPhone 13 128GB", make="apple", storage="128GB")
    assert row.match_input() == ("Apple iPhone 13 128GB", 1)


def test_match_input_quantity_precedence():
    assert ManifestRow(1, "Pixel 7 x3", quantity=5).match_input() == ("Pixel 7", 5)
    assert ManifestRow(1, "Pixel 7 x3").match_input() == ("Pixel 7", 3)
    assert ManifestRow(1, "Pixel 7").match_input() == ("Pixel 7", 1)


def test_empty_csv():
    assert parse_manifest_csv("") == []
    assert parse_manifest_csv("\n , \n") == []


def test_parse_quantity():
    assert parse_quantity("2") == 2
    assert parse_quantity("2.0") == 2
    assert parse_quantity(" ") is None
    assert parse_quantity("abc") is None
    assert parse_quantity("-1") is None
    assert parse_quantity("inf") is None
    assert parse_quantity(None) is None


def test_rows_from_payload_skips_blank_rows():
    rows = rows_from_payload(
        [
            {"raw_text": "iPhone 13", "quantity": 2, "grade": "a"},
            {"raw_text": "   "},
            {"raw_text": "Pixel 7", "storage": "128"},
        ]
    )
    assert [(r.line_no, r.raw_text) for r in rows] == [(1, "iPhone 13"), (2, "Pixel 7")]
    assert rows[0].quantity == 2
    assert rows[0].grade == "a"
    assert rows[1].storage == "128"
