# app/features/estimates/manifest.py
"""
Manifest parsing: uploaded CSV text or JSON rows -> ManifestRow list.

CSV handling
------------
- stdlib csv reader (quoted fields, embedded commas)
- header row detected by synonyms; columns may come in any order
- no recognisable header -> column 1 is the device text, column 2 the quantity
- blank device cells are skipped (not an error)

Header synonyms (case-insensitive):
  device    device, model, phone, handset, product, description, item, name
  quantity  quantity, qty, count, units, amount
  storage   storage, capacity, memory, size, gb
  make      make, brand, manufacturer, oem
  grade     grade, condition
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from app.features.matching.text import normalize_text, split_quantity, tokenize

HEADER_SYNONYMS: Dict[str, tuple[str, ...]] = {
    "quantity": ("quantity", "qty", "count", "units", "amount"),
    "storage": ("storage", "capacity", "memory", "size", "gb"),
    "make": ("make", "brand", "manufacturer", "oem"),
    "grade": ("grade", "condition"),
    "device": ("device", "model", "phone", "handset", "product", "description", "item", "name"),
}


@dataclass(frozen=True)
class ManifestRow:
    """One manifest line as uploaded. raw_text is kept verbatim for the DeviceLine."""

    line_no: int
    raw_text: str
    quantity: Optional[int] = None
    grade: Optional[str] = None
    make: Optional[str] = None
    storage: Optional[str] = None

    def match_input(self) -> Tuple[str, int]:
        """
        (text to match, quantity). An explicit quantity column wins over a
        trailing "x2" in the text; make/storage columns are folded into the
        text when it does not already mention them.
        """
        text, text_qty = split_quantity(self.raw_text)

        make = (self.make or "").strip()
        if make and make.lower() not in text.lower():
            text = f"{make} {text}"

        storage = (self.storage or "").strip()
        if storage:
            if storage.isdigit():
                storage = f"{storage}GB"
            storage_norm = normalize_text(storage)
            if storage_norm and storage_norm not in normalize_text(text):
                text = f"{text} {storage}"

        return text, (self.quantity or text_qty or 1)


def parse_quantity(value: Any) -> Optional[int]:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    try:
        q = int(float(s))
    except (ValueError, OverflowError):
        return None
    return q if q > 0 else None


def _column_kind(cell: str) -> Optional[str]:
    key = normalize_text(cell)
    if not key:
        return None
    tokens = set(tokenize(key))
    for kind, words in HEADER_SYNONYMS.items():
        if key in words or tokens & set(words):
            return kind
    return None


def detect_header(cells: List[str]) -> Optional[Dict[str, int]]:
    """Map kind -> column index, or None when `cells` is not a header row."""
    mapping: Dict[str, int] = {}
    for idx, cell in enumerate(cells):
        kind = _column_kind(cell)
        if kind and kind not in mapping:
            mapping[kind] = idx
    return mapping if "device" in mapping else None


def _cell(row: List[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def parse_manifest_csv(text: str) -> List[ManifestRow]:
    reader = csv.reader(io.StringIO((text or "").lstrip("\ufeff")))
    rows = [r for r in reader if any((c or "").strip() for c in r)]
    if not rows:
        return []

    header = detect_header(rows[0])
    body = rows[1:] if header else rows
    cols = header or {"device": 0, "quantity": 1}

    out: List[ManifestRow] = []
    for r in body:
        raw = _cell(r, cols.get("device"))
        if not raw:
            continue
        out.append(
            ManifestRow(
                line_no=len(out) + 1,
                raw_text=raw,
                quantity=parse_quantity(_cell(r, cols.get("quantity"))),
                grade=_cell(r, cols.get("grade")) or None,
                make=_cell(r, cols.get("make")) or None,
                storage=_cell(r, cols.get("storage")) or None,
            )
        )

    return out


def rows_from_payload(items: List[Dict[str, Any]]) -> List[ManifestRow]:
    """JSON rows: {raw_text, quantity?, grade?, make?, storage?}."""
    out: List[ManifestRow] = []
    for item in items:
        raw = str(item.get("raw_text") or "").strip()
        if not raw:
            continue
        out.append(
            ManifestRow(
                line_no=len(out) + 1,
                raw_text=raw,
                quantity=parse_quantity(item.get("quantity")),
                grade=str(item.get("grade") or "").strip() or None,
                make=str(item.get("make") or "").strip() or None,
                storage=str(item.get("storage") or "").strip() or None,
            )
        )
    return out
