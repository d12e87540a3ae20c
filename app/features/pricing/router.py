"""
Pricing endpoints:
- /price-lists               ingest / list / detail / replace / activate / delete
- /price-lists/{id}/adjust   bulk adjust (percent / dollar / set_ratios)
- /pricing-settings/{cat}    rounding unit + grade ratios
- /prices                    single price lookup
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, get_caches
from app.db.mongo import get_db
from app.features.pricing.schemas import (
    BulkAdjustRequest,
    BulkAdjustResult,
    DevicePrices,
    GradePrices,
    IngestResult,
    PriceListCreate,
    PriceListDetail,
    PriceListRead,
    PriceListReplace,
    PriceQuoteRead,
    PricingSettingsRead,
    PricingSettingsUpdate,
    SnapshotRead,
)
from app.features.pricing.service import (
    activate_price_list,
    bulk_adjust,
    create_price_list,
    delete_price_list,
    get_price_list_detail,
    get_settings,
    list_price_lists,
    list_snapshots,
    price_for,
    replace_prices,
    set_device_price,
    update_settings,
)

router = APIRouter(tags=["pricing"])


@router.post("/price-lists", response_model=IngestResult, status_code=201)
async def create_price_list_endpoint(
    payload: PriceListCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await create_price_list(db, caches, payload)


@router.get("/price-lists", response_model=list[PriceListRead])
async def list_price_lists_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
    category: str | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
):
    return await list_price_lists(db, caches, category=category, limit=limit)


@router.get("/price-lists/{price_list_id}", response_model=PriceListDetail)
async def get_price_list_endpoint(
    price_list_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await get_price_list_detail(db, caches, price_list_id)


@router.put("/price-lists/{price_list_id}/prices", response_model=IngestResult)
async def replace_prices_endpoint(
    price_list_id: str,
    payload: PriceListReplace,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await replace_prices(db, caches, price_list_id, payload.rows)


@router.put("/price-lists/{price_list_id}/prices/{device_id}", response_model=DevicePrices)
async def set_device_price_endpoint(
    price_list_id: str,
    device_id: int,
    payload: GradePrices,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await set_device_price(db, caches, price_list_id, device_id, payload)


@router.post("/price-lists/{price_list_id}/activate", response_model=PriceListRead)
async def activate_price_list_endpoint(
    price_list_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await activate_price_list(db, caches, price_list_id)


@router.delete("/price-lists/{price_list_id}")
async def delete_price_list_endpoint(
    price_list_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    await delete_price_list(db, caches, price_list_id)
    return {"ok": True}


@router.get("/price-lists/{price_list_id}/snapshots", response_model=list[SnapshotRead])
async def list_snapshots_endpoint(
    price_list_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    limit: int = Query(50, ge=1, le=500),
):
    return await list_snapshots(db, price_list_id, limit=limit)


@router.post("/price-lists/{price_list_id}/adjust", response_model=BulkAdjustResult)
async def bulk_adjust_endpoint(
    price_list_id: str,
    payload: BulkAdjustRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await bulk_adjust(db, caches, price_list_id, payload)


@router.get("/prices", response_model=PriceQuoteRead)
async def price_for_endpoint(
    device_id: int = Query(...),
    grade: str = Query(..., min_length=1, max_length=1),
    price_list_id: str | None = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await price_for(db, caches, device_id=device_id, grade=grade, price_list_id=price_list_id)


@router.get("/pricing-settings/{category}", response_model=PricingSettingsRead)
async def get_settings_endpoint(category: str, caches: Caches = Depends(get_caches)):
    return await get_settings(caches, category)


@router.patch("/pricing-settings/{category}", response_model=PricingSettingsRead)
async def update_settings_endpoint(
    category: str,
    payload: PricingSettingsUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await update_settings(db, caches, category, payload)
