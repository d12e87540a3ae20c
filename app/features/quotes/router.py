from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, get_caches
from app.core.principal import Principal, get_principal
from app.db.mongo import get_db
from app.features.quotes.schemas import QuoteCreate, QuoteRead
from app.features.quotes.service import create_quote, get_quote

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteRead, status_code=201)
async def create_quote_endpoint(
    payload: QuoteCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
    principal: Optional[Principal] = Depends(get_principal),
):
    return await create_quote(db, caches, payload, principal)


@router.get("/{quote_id}", response_model=QuoteRead)
async def get_quote_endpoint(quote_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_quote(db, quote_id)
