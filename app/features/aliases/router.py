from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, get_caches
from app.db.mongo import get_db
from app.features.aliases.schemas import AliasCreate, AliasRead
from app.features.aliases.service import create_alias, delete_alias, list_aliases

router = APIRouter(prefix="/aliases", tags=["matching"])


@router.put("", response_model=AliasRead)
async def save_alias_endpoint(
    payload: AliasCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await create_alias(db, caches, payload)


@router.get("", response_model=list[AliasRead])
async def list_aliases_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    search: str | None = Query(None),
    device_id: int | None = Query(None),
    limit: int = Query(500, ge=1, le=5000),
):
    return await list_aliases(db, search=search, device_id=device_id, limit=limit)


@router.delete("")
async def delete_alias_endpoint(
    raw_text: str = Query(..., min_length=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    await delete_alias(db, caches, raw_text)
    return {"ok": True}
