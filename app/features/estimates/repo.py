"""
BulkQuotesRepo + DeviceLinesRepo.

One bulk_quotes header per submission; one bulk_quote_lines doc per
manifest row, keyed by (bulk_quote_id, line_no).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BulkQuotesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["bulk_quotes"]

    async def insert(self, doc: Dict[str, Any], session: Optional[AsyncIOMotorClientSession] = None) -> Dict[str, Any]:
        await self._col.insert_one(doc, session=session)
        doc.pop("_id", None)
        return doc

    async def get(self, bulk_quote_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": bulk_quote_id}, {"_id": 0})

    async def set_fields(self, bulk_quote_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._col.find_one_and_update(
            {"id": bulk_quote_id},
            {"$set": {**fields, "updated_at": _now_utc()}},
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )

    async def delete(self, bulk_quote_id: str) -> None:
        await self._col.delete_one({"id": bulk_quote_id})


class DeviceLinesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["bulk_quote_lines"]

    async def insert_many(
        self,
        lines: Sequence[Dict[str, Any]],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        if not lines:
            return 0
        # insert_many mutates the dicts (adds _id); hand it copies.
        res = await self._col.insert_many([dict(x) for x in lines], ordered=True, session=session)
        return len(res.inserted_ids)

    async def list(self, bulk_quote_id: str) -> List[Dict[str, Any]]:
        cursor = self._col.find({"bulk_quote_id": bulk_quote_id}, {"_id": 0}).sort("line_no", 1)
        return [doc async for doc in cursor]

    async def get(self, bulk_quote_id: str, line_no: int) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"bulk_quote_id": bulk_quote_id, "line_no": int(line_no)}, {"_id": 0})

    async def update(self, bulk_quote_id: str, line_no: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._col.find_one_and_update(
            {"bulk_quote_id": bulk_quote_id, "line_no": int(line_no)},
            {"$set": patch},
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )

    async def delete_for_quote(self, bulk_quote_id: str) -> int:
        res = await self._col.delete_many({"bulk_quote_id": bulk_quote_id})
        return int(res.deleted_count)
