"""
Matcher wired to the cached catalog + alias index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel

from app.core.cache import Caches
from app.core.config import config
from app.features.matching.matcher import CandidateDevice, MatchResult, MatchThresholds, match
from app.features.matching.text import split_quantity

logger = logging.getLogger(__name__)


def configured_thresholds() -> MatchThresholds:
    return MatchThresholds(medium=config.match_medium_threshold, low=config.match_low_threshold)


@dataclass(frozen=True)
class MatchContext:
    """Everything the pure matcher needs, loaded once per request."""

    candidates: List[CandidateDevice]
    alias_index: Dict[str, int]
    thresholds: MatchThresholds

    def match(self, raw_text: Optional[str], category: Optional[str] = None) -> MatchResult:
        return match(raw_text, self.candidates, self.alias_index, self.thresholds, category=category)


async def load_match_context(caches: Caches) -> MatchContext:
    return MatchContext(
        candidates=await caches.devices.get(),
        alias_index=await caches.aliases.get(),
        thresholds=configured_thresholds(),
    )


class MatchPreviewRequest(BaseModel):
    raw_text: str
    category: Optional[str] = None


class MatchPreviewRead(BaseModel):
    raw_text: str
    quantity: int
    device_id: Optional[int] = None
    device_name: Optional[str] = None
    confidence: str
    score: float
    needs_review: bool
    alternatives: List[int] = []


async def preview_match(caches: Caches, data: MatchPreviewRequest) -> MatchPreviewRead:
    ctx = await load_match_context(caches)
    text, qty = split_quantity(data.raw_text)
    res = ctx.match(text, category=data.category)

    logger.debug("preview_match raw=%r device_id=%s confidence=%s", data.raw_text, res.device_id, res.confidence.value)
    return MatchPreviewRead(
        raw_text=data.raw_text,
        quantity=qty or 1,
        device_id=res.device_id,
        device_name=res.device_name,
        confidence=res.confidence.value,
        score=round(res.score, 4),
        needs_review=res.needs_review,
        alternatives=res.alternatives,
    )
