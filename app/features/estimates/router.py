"""
/estimates endpoints:
- submit manifest (JSON rows or CSV text)
- detail + CSV export
- per-line inspection and device correction
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, get_caches
from app.core.principal import Principal, get_principal
from app.db.mongo import get_db
from app.features.estimates.schemas import (
    DeviceLineRead,
    EstimateCreate,
    EstimateCsvCreate,
    EstimateDetail,
    LineAssignDevice,
    LineInspectionUpdate,
)
from app.features.estimates.service import (
    assign_line_device,
    create_estimate,
    create_estimate_from_csv,
    export_estimate_csv,
    get_estimate,
    update_line_inspection,
)

router = APIRouter(prefix="/estimates", tags=["estimates"])


@router.post("", response_model=EstimateDetail, status_code=201)
async def create_estimate_endpoint(
    payload: EstimateCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
    principal: Optional[Principal] = Depends(get_principal),
):
    return await create_estimate(db, caches, payload, principal)


@router.post("/csv", response_model=EstimateDetail, status_code=201)
async def create_estimate_csv_endpoint(
    payload: EstimateCsvCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
    principal: Optional[Principal] = Depends(get_principal),
):
    return await create_estimate_from_csv(db, caches, payload, principal)


@router.get("/{bulk_quote_id}", response_model=EstimateDetail)
async def get_estimate_endpoint(bulk_quote_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_estimate(db, bulk_quote_id)


@router.get("/{bulk_quote_id}/export")
async def export_estimate_endpoint(bulk_quote_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    body = await export_estimate_csv(db, bulk_quote_id)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="estimate-{bulk_quote_id}.csv"'},
    )


@router.patch("/{bulk_quote_id}/lines/{line_no}", response_model=DeviceLineRead)
async def update_line_endpoint(
    bulk_quote_id: str,
    line_no: int,
    payload: LineInspectionUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await update_line_inspection(db, caches, bulk_quote_id, line_no, payload)


@router.put("/{bulk_quote_id}/lines/{line_no}/device", response_model=DeviceLineRead)
async def assign_line_device_endpoint(
    bulk_quote_id: str,
    line_no: int,
    payload: LineAssignDevice,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await assign_line_device(db, caches, bulk_quote_id, line_no, payload)
