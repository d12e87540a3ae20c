# app/features/aliases/repo.py
"""
AliasesRepo: normalized raw text -> device_id.

Stored key is app.features.matching.text.alias_key(raw), so lookups made by
the matcher and writes made here always agree on normalization.

Saving an alias that already exists re-points it to the new device
(last write wins). Aliases are only removed by an explicit delete.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

ALIAS_SOURCES = ("auto", "admin")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class AliasesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["device_aliases"]

    async def upsert(self, *, alias: str, device_id: int, created_by: str) -> Dict[str, Any]:
        now = _now_utc()
        doc = await self._col.find_one_and_update(
            {"alias": alias},
            {
                "$set": {"device_id": int(device_id), "created_by": created_by, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )
        return doc

    async def get(self, alias: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"alias": alias}, {"_id": 0})

    async def list(
        self,
        *,
        search: Optional[str] = None,
        device_id: Optional[int] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if device_id is not None:
            q["device_id"] = int(device_id)
        if search and search.strip():
            q["alias"] = {"$regex": re.escape(search.strip().lower())}

        cursor = self._col.find(q, {"_id": 0}).sort("alias", 1).limit(int(limit))
        return [doc async for doc in cursor]

    async def delete(self, alias: str) -> bool:
        res = await self._col.delete_one({"alias": alias})
        return res.deleted_count == 1

    async def load_index(self) -> Dict[str, int]:
        cursor = self._col.find({}, {"_id": 0, "alias": 1, "device_id": 1})
        return {str(d["alias"]): int(d["device_id"]) async for d in cursor}
