"""
Alias service: the matcher's learned memory.

An accepted suggestion is stored as created_by="auto"; an admin correction as
created_by="admin". Either way the alias table is consulted before scoring,
so the next identical manifest line resolves with "high" confidence.
"""

from __future__ import annotations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches
from app.core.errors import NotFoundError, ValidationError
from app.features.aliases.repo import AliasesRepo
from app.features.aliases.schemas import AliasCreate, AliasRead
from app.features.catalog.repo import DevicesRepo
from app.features.matching.text import alias_key

logger = logging.getLogger(__name__)


async def save_alias(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    *,
    raw_text: str,
    device_id: int,
    created_by: str = "admin",
) -> AliasRead:
    key = alias_key(raw_text)
    if not key:
        raise ValidationError(code="raw_text", message="Alias text is empty after normalization")

    if not await DevicesRepo(db).get(device_id):
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": device_id})

    doc = await AliasesRepo(db).upsert(alias=key, device_id=device_id, created_by=created_by)
    caches.aliases.invalidate()
    logger.info("save_alias alias=%r device_id=%s created_by=%s", key, device_id, created_by)

    return AliasRead(**doc)


async def create_alias(db: AsyncIOMotorDatabase, caches: Caches, data: AliasCreate) -> AliasRead:
    return await save_alias(db, caches, raw_text=data.raw_text, device_id=data.device_id, created_by=data.created_by)


async def list_aliases(
    db: AsyncIOMotorDatabase,
    *,
    search: Optional[str] = None,
    device_id: Optional[int] = None,
    limit: int = 500,
) -> list[AliasRead]:
    docs = await AliasesRepo(db).list(search=search, device_id=device_id, limit=limit)
    return [AliasRead(**d) for d in docs]


async def delete_alias(db: AsyncIOMotorDatabase, caches: Caches, raw_text: str) -> None:
    key = alias_key(raw_text)
    deleted = await AliasesRepo(db).delete(key)
    if not deleted:
        raise NotFoundError(code="alias_not_found", message="Alias not found", details={"alias": key})

    caches.aliases.invalidate()
    logger.info("delete_alias alias=%r", key)
