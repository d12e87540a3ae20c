# app/features/matching/matcher.py
"""
Raw manifest text -> canonical device + confidence tier.

Order of resolution:
  1) alias index (exact normalized text)       -> "high"
  2) token scoring against the active catalog  -> "medium" / "low" / "manual"
  3) nothing usable in the text                -> "unmatched"

Scoring
-------
score     = |query tokens found in candidate| / |query tokens|
precision = |query tokens found in candidate| / |candidate tokens|

Candidates are ranked by (score, precision, overlap) descending, then by
display name and device id ascending. Precision separates
"iPhone 13 Pro 256GB" from "iPhone 13 Pro Max 256GB" for the query
"iphone 13 pro 256gb": both contain every query token, only one has nothing
extra.

A match is ambiguous when two candidates tie on (score, precision).

Brand shorthand in the query is expanded before scoring: pure abbreviations
("iph", "sm") are replaced by the brand, model-line names ("redmi", "moto")
keep their token and add the brand. The alias key is never expanded.

This module is dependency-free (no Motor/PyMongo) so it can be unit tested
and reused by the estimate pipeline with preloaded data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from app.features.matching.text import alias_key, normalize_text, tokenize


# abbreviation -> brand token (the abbreviation itself is dropped)
BRAND_SHORTHAND: Dict[str, str] = {
    "iph": "apple",
    "ip": "apple",
    "sam": "samsung",
    "sm": "samsung",
}

# model-line name -> brand token it implies (both are kept)
BRAND_IMPLIED: Dict[str, str] = {
    "redmi": "xiaomi",
    "poco": "xiaomi",
    "moto": "motorola",
}


def expand_brand_tokens(tokens: Iterable[str]) -> List[str]:
    out: List[str] = []
    for tok in tokens:
        brand = BRAND_SHORTHAND.get(tok)
        if brand is not None:
            tok = brand
        if tok not in out:
            out.append(tok)
        implied = BRAND_IMPLIED.get(tok)
        if implied is not None and implied not in out:
            out.append(implied)
    return out


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MANUAL = "manual"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class CandidateDevice:
    device_id: int
    make: str
    model: str
    storage: str
    category: str = "Phone"
    active: bool = True

    @property
    def name(self) -> str:
        return " ".join(p for p in (self.make, self.model, self.storage) if p)


@dataclass(frozen=True)
class MatchThresholds:
    medium: float = 0.8
    low: float = 0.6


@dataclass
class MatchResult:
    device_id: Optional[int]
    confidence: Confidence
    score: float = 0.0
    device_name: Optional[str] = None
    # Other device ids that tied with the winner (ambiguous matches only).
    alternatives: List[int] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.device_id is not None

    @property
    def needs_review(self) -> bool:
        return self.confidence in (Confidence.LOW, Confidence.MANUAL, Confidence.UNMATCHED)


@dataclass(frozen=True)
class _Scored:
    device: CandidateDevice
    score: float
    precision: float
    overlap: int

    def rank_key(self) -> Tuple:
        return (-self.score, -self.precision, -self.overlap, self.device.name.lower(), self.device.device_id)


def _candidate_tokens(device: CandidateDevice) -> set[str]:
    return set(tokenize(normalize_text(f"{device.make} {device.model} {device.storage}")))


def score_candidates(query_tokens: Iterable[str], candidates: Iterable[CandidateDevice]) -> List[_Scored]:
    q = set(query_tokens)
    if not q:
        return []

    out: List[_Scored] = []
    for dev in candidates:
        c = _candidate_tokens(dev)
        if not c:
            continue
        overlap = len(q & c)
        if overlap == 0:
            continue
        out.append(_Scored(device=dev, score=overlap / len(q), precision=overlap / len(c), overlap=overlap))

    out.sort(key=_Scored.rank_key)
    return out


def match(
    raw_text: Optional[str],
    candidates: Iterable[CandidateDevice],
    alias_index: Mapping[str, int],
    thresholds: MatchThresholds = MatchThresholds(),
    *,
    category: Optional[str] = None,
) -> MatchResult:
    key = alias_key(raw_text)
    tokens = tokenize(key)
    if not tokens:
        return MatchResult(device_id=None, confidence=Confidence.UNMATCHED)

    pool: List[CandidateDevice] = [
        d for d in candidates if d.active and (category is None or d.category == category)
    ]
    by_id: Dict[int, CandidateDevice] = {d.device_id: d for d in candidates}

    # 1) alias table wins over any scoring
    alias_device_id = alias_index.get(key)
    if alias_device_id is not None:
        dev = by_id.get(int(alias_device_id))
        return MatchResult(
            device_id=int(alias_device_id),
            confidence=Confidence.HIGH,
            score=1.0,
            device_name=dev.name if dev else None,
        )

    # 2) token scoring
    scored = score_candidates(expand_brand_tokens(tokens), pool)
    if not scored or scored[0].score < thresholds.low:
        return MatchResult(
            device_id=None,
            confidence=Confidence.MANUAL,
            score=scored[0].score if scored else 0.0,
        )

    best = scored[0]
    tied = [s for s in scored[1:] if s.score == best.score and s.precision == best.precision]

    if best.score >= thresholds.medium and not tied:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    return MatchResult(
        device_id=best.device.device_id,
        confidence=confidence,
        score=best.score,
        device_name=best.device.name,
        alternatives=[s.device.device_id for s in tied],
    )
