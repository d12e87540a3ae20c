from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.cache import Caches, get_caches
from app.features.matching.service import MatchPreviewRead, MatchPreviewRequest, preview_match

router = APIRouter(prefix="/match", tags=["matching"])


@router.post("", response_model=MatchPreviewRead)
async def preview_match_endpoint(payload: MatchPreviewRequest, caches: Caches = Depends(get_caches)):
    return await preview_match(caches, payload)
