"""
Device catalog service.
"""

from __future__ import annotations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.core.cache import Caches
from app.core.config import config
from app.core.errors import NotFoundError
from app.features.catalog.repo import DevicesRepo
from app.features.catalog.schemas import DeviceCreate, DeviceRead, DeviceUpdate

logger = logging.getLogger(__name__)


async def create_device(db: AsyncIOMotorDatabase, caches: Caches, data: DeviceCreate) -> DeviceRead:
    repo = DevicesRepo(db)

    logger.info("create_device:start make=%s model=%s storage=%s", data.make, data.model, data.storage)
    doc = await repo.create(
        make=data.make,
        model=data.model,
        storage=data.storage,
        category=data.category or config.default_category,
    )
    caches.devices.invalidate()
    logger.info("create_device:done device_id=%s", doc["device_id"])

    return DeviceRead(**doc)


async def ensure_device(
    db: AsyncIOMotorDatabase,
    *,
    make: str,
    model: str,
    storage: str,
    category: str,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> tuple[int, bool]:
    """
    Return (device_id, created). Used by price-list ingestion to auto-create
    devices it has not seen before. Callers invalidate the device cache.
    """
    repo = DevicesRepo(db)
    existing = await repo.get_by_keys(make, model, storage, session=session)
    if existing:
        return int(existing["device_id"]), False

    doc = await repo.create(make=make, model=model, storage=storage, category=category, session=session)
    logger.info("ensure_device:created device_id=%s name=%s", doc["device_id"], doc["name"])
    return int(doc["device_id"]), True


async def get_device(db: AsyncIOMotorDatabase, device_id: int) -> DeviceRead:
    doc = await DevicesRepo(db).get(device_id)
    if not doc:
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": device_id})
    return DeviceRead(**doc)


async def list_devices(
    db: AsyncIOMotorDatabase,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    active: Optional[bool] = None,
    limit: int = 500,
) -> list[DeviceRead]:
    docs = await DevicesRepo(db).list(search=search, category=category, active=active, limit=limit)
    logger.debug("list_devices count=%s search=%s category=%s", len(docs), search, category)
    return [DeviceRead(**d) for d in docs]


async def update_device(db: AsyncIOMotorDatabase, caches: Caches, device_id: int, patch: DeviceUpdate) -> DeviceRead:
    update = patch.model_dump(exclude_unset=True)
    logger.info("update_device device_id=%s fields=%s", device_id, sorted(update.keys()))

    doc = await DevicesRepo(db).update(device_id, update)
    caches.devices.invalidate()
    return DeviceRead(**doc)
