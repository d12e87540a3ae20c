"""
/devices endpoints:
- create canonical device
- list / search
- toggle active flag
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, get_caches
from app.db.mongo import get_db
from app.features.catalog.schemas import DeviceCreate, DeviceRead, DeviceUpdate
from app.features.catalog.service import create_device, get_device, list_devices, update_device

router = APIRouter(prefix="/devices", tags=["catalog"])


@router.post("", response_model=DeviceRead, status_code=201)
async def create_device_endpoint(
    payload: DeviceCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await create_device(db, caches, payload)


@router.get("", response_model=list[DeviceRead])
async def list_devices_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    search: str | None = Query(None),
    category: str | None = Query(None),
    active: bool | None = Query(None),
    limit: int = Query(500, ge=1, le=5000),
):
    return await list_devices(db, search=search, category=category, active=active, limit=limit)


@router.get("/{device_id}", response_model=DeviceRead)
async def get_device_endpoint(device_id: int, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_device(db, device_id)


@router.patch("/{device_id}", response_model=DeviceRead)
async def update_device_endpoint(
    device_id: int,
    payload: DeviceUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    caches: Caches = Depends(get_caches),
):
    return await update_device(db, caches, device_id, payload)
