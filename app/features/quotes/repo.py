from __future__ import annotations

from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase


class QuotesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["quotes"]

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        await self._col.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def get(self, quote_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": quote_id}, {"_id": 0})
