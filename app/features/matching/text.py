# app/features/matching/text.py
"""
Free-text normalization for manifest device strings.

Manifest cells look like:
  "iPhone 13 Pro 256GB x2"
  "SAMSUNG Galaxy S23 Ultra - 512 gb"
  "pixel 7 (128GB) qty 3"

Rules:
  - lowercase, punctuation -> space, whitespace collapsed
  - "256 gb" / "256GB" -> single token "256gb" (same for tb)
  - a trailing quantity marker ("x2", "×2", "qty 3", "qty: 3") is split off;
    it is a line quantity, not part of the device description
  - except "x<n>" right after a series that names models that way
    ("huawei mate x2", "oppo find x5"): that is the model
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")
_STORAGE_RE = re.compile(r"\b(\d+)\s*(gb|tb)\b")

# Quantity markers only at the end of the string, after whitespace. The "x"
# marker is lowercase only: "Mate X2" is a model name.
_QTY_SUFFIX_RE = re.compile(r"\s(?:x|×|(?i:qty)\s*:?)\s*(\d{1,5})\s*$")
_QTY_PREFIX_RE = re.compile(r"^\s*(\d{1,5})\s*(?:x|×)\s+", re.IGNORECASE)

# Series whose models are named "X<n>" (Mate X2, Find X5, vivo X90, Moto X4).
_X_MODEL_SERIES = frozenset({"mate", "find", "vivo", "moto"})
_X_MODEL_RE = re.compile(r"(\S+)\s+x\d+$", re.IGNORECASE)


def _ends_with_x_model(s: str) -> bool:
    m = _X_MODEL_RE.search(s)
    return bool(m) and m.group(1).lower() in _X_MODEL_SERIES


def split_quantity(raw: Optional[str]) -> Tuple[str, Optional[int]]:
    """Return (text_without_quantity, quantity or None)."""
    s = (raw or "").strip()
    if not s:
        return "", None

    m = _QTY_SUFFIX_RE.search(s)
    if m and not _ends_with_x_model(s):
        qty = int(m.group(1))
        return s[: m.start()].strip(), (qty if qty > 0 else None)

    m = _QTY_PREFIX_RE.match(s)
    if m:
        qty = int(m.group(1))
        return s[m.end():].strip(), (qty if qty > 0 else None)

    return s, None


def normalize_text(raw: Optional[str]) -> str:
    """
    Canonical form used both as the alias key and as scoring input.

    "Apple iPhone-13 Pro, 256 GB" -> "apple iphone 13 pro 256gb"
    """
    s = (raw or "").lower().replace("×", " ")
    s = _NON_ALNUM_RE.sub(" ", s)
    s = _STORAGE_RE.sub(lambda m: f"{int(m.group(1))}{m.group(2)}", s)
    return " ".join(s.split())


def tokenize(normalized: str) -> List[str]:
    return [t for t in normalized.split(" ") if t]


def alias_key(raw: Optional[str]) -> str:
    """Alias lookup key: quantity marker removed, then normalized."""
    text, _qty = split_quantity(raw)
    return normalize_text(text)
