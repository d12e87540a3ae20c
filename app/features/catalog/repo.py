# app/features/catalog/repo.py
"""
DevicesRepo: canonical device records.

Device ids are small integers from the `devices` counter (see
app.db.mongo.next_sequence), so manifests and price sheets can reference
them directly.

Uniqueness is on the normalized (make, model, storage) triple; the
*_key fields hold those normalized values.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConflictError, NotFoundError
from app.db.mongo import next_sequence
from app.features.matching.text import normalize_text

DEVICE_SEQUENCE = "devices"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def device_keys(make: str, model: str, storage: str) -> Dict[str, str]:
    return {
        "make_key": normalize_text(make),
        "model_key": normalize_text(model),
        "storage_key": normalize_text(storage),
    }


def device_name(make: str, model: str, storage: str) -> str:
    return " ".join(p.strip() for p in (make, model, storage) if p and p.strip())


class DevicesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["devices"]

    async def create(
        self,
        *,
        make: str,
        model: str,
        storage: str,
        category: str,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Dict[str, Any]:
        keys = device_keys(make, model, storage)

        # Pre-check so obvious duplicates never consume a counter value.
        existing = await self._col.find_one(keys, {"_id": 0, "device_id": 1}, session=session)
        if existing:
            raise ConflictError(
                code="device_exists",
                message="Device with this make/model/storage already exists",
                details={"device_id": existing["device_id"]},
            )

        now = _now_utc()
        device_id = await next_sequence(self._db, DEVICE_SEQUENCE, session=session)
        doc = {
            "device_id": device_id,
            "make": make.strip(),
            "model": model.strip(),
            "storage": (storage or "").strip(),
            "category": category,
            "name": device_name(make, model, storage),
            "active": True,
            **keys,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self._col.insert_one(doc, session=session)
        except DuplicateKeyError as exc:
            raise ConflictError(
                code="device_exists",
                message="Device with this make/model/storage already exists",
            ) from exc

        doc.pop("_id", None)
        return doc

    async def get(self, device_id: int) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"device_id": int(device_id)}, {"_id": 0})

    async def get_by_keys(
        self,
        make: str,
        model: str,
        storage: str,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self._col.find_one(device_keys(make, model, storage), {"_id": 0}, session=session)

    async def get_many(self, device_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        ids = sorted({int(x) for x in device_ids})
        if not ids:
            return {}
        cursor = self._col.find({"device_id": {"$in": ids}}, {"_id": 0})
        return {int(d["device_id"]): d async for d in cursor}

    async def list(
        self,
        *,
        search: Optional[str] = None,
        category: Optional[str] = None,
        active: Optional[bool] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if category:
            q["category"] = category
        if active is not None:
            q["active"] = bool(active)
        if search and search.strip():
            q["name"] = {"$regex": re.escape(search.strip()), "$options": "i"}

        cursor = self._col.find(q, {"_id": 0}).sort("device_id", 1).limit(int(limit))
        return [doc async for doc in cursor]

    async def list_all(self) -> List[Dict[str, Any]]:
        cursor = self._col.find({}, {"_id": 0})
        return [doc async for doc in cursor]

    async def update(self, device_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        patch = {k: v for k, v in patch.items() if v is not None}
        patch["updated_at"] = _now_utc()

        doc = await self._col.find_one_and_update(
            {"device_id": int(device_id)},
            {"$set": patch},
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )
        if not doc:
            raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": device_id})
        return doc
