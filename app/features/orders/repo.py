# app/features/orders/repo.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.db.mongo import next_sequence

INVENTORY_SEQUENCE = "inventory"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class InventoryRepo:
    """
    Resale stock. status: "listed" (for sale) | "sold" (reserved by an order).
    `listed` mirrors status for storefront queries.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._col = db["inventory"]

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = _now_utc()
        doc = {
            **fields,
            "inventory_id": await next_sequence(self._db, INVENTORY_SEQUENCE),
            "status": "listed",
            "listed": True,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def get_many(self, inventory_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        cursor = self._col.find({"inventory_id": {"$in": [int(x) for x in inventory_ids]}}, {"_id": 0})
        return {int(d["inventory_id"]): d async for d in cursor}

    async def list(self, *, status: Optional[str] = None, limit: int = 500) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if status:
            q["status"] = status
        cursor = self._col.find(q, {"_id": 0}).sort("inventory_id", 1).limit(int(limit))
        return [doc async for doc in cursor]

    async def reserve(self, inventory_id: int, session: Optional[AsyncIOMotorClientSession] = None) -> bool:
        """listed -> sold, only if still listed."""
        res = await self._col.update_one(
            {"inventory_id": int(inventory_id), "status": "listed"},
            {"$set": {"status": "sold", "listed": False, "updated_at": _now_utc()}},
            session=session,
        )
        return res.modified_count == 1

    async def relist_many(self, inventory_ids: List[int], session: Optional[AsyncIOMotorClientSession] = None) -> int:
        res = await self._col.update_many(
            {"inventory_id": {"$in": [int(x) for x in inventory_ids]}},
            {"$set": {"status": "listed", "listed": True, "updated_at": _now_utc()}},
            session=session,
        )
        return int(res.matched_count)


class OrdersRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["orders"]

    async def insert(self, doc: Dict[str, Any], session: Optional[AsyncIOMotorClientSession] = None) -> Dict[str, Any]:
        await self._col.insert_one(doc, session=session)
        doc.pop("_id", None)
        return doc

    async def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": order_id}, {"_id": 0})

    async def mark_paid(self, order_id: str, payment_reference: str) -> Optional[Dict[str, Any]]:
        """pending -> paid. Returns None if the order is not pending any more."""
        now = _now_utc()
        doc = await self._col.find_one_and_update(
            {"id": order_id, "status": "pending"},
            {"$set": {"status": "paid", "paid_at": now, "updated_at": now, "payment_reference": payment_reference}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            doc.pop("_id", None)
        return doc
