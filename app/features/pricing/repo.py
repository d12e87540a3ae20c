# app/features/pricing/repo.py
"""
Pricing persistence.

Collections
-----------
categories            one doc per category: pricing settings + active price list pointer
price_lists           list header (name, category, currency, effective date)
price_list_prices     one doc per (price_list_id, device_id) with {"A": .., ..., "E": ..}
price_list_snapshots  previous prices, written before any overwrite
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument, UpdateOne

from app.features.pricing.rounding import DEFAULT_GRADE_RATIOS, DEFAULT_ROUNDING


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class CategoriesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["categories"]

    async def get(self, name: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"name": name}, {"_id": 0})

    async def list_all(self) -> List[Dict[str, Any]]:
        cursor = self._col.find({}, {"_id": 0}).sort("name", 1)
        return [doc async for doc in cursor]

    async def upsert(
        self,
        name: str,
        patch: Dict[str, Any],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Dict[str, Any]:
        now = _now_utc()
        patch = dict(patch)
        patch["updated_at"] = now

        insert_defaults: Dict[str, Any] = {"created_at": now}
        if "rounding" not in patch:
            insert_defaults["rounding"] = DEFAULT_ROUNDING
        if "grade_ratios" not in patch:
            insert_defaults["grade_ratios"] = dict(DEFAULT_GRADE_RATIOS)
        if "active_price_list_id" not in patch:
            insert_defaults["active_price_list_id"] = None

        return await self._col.find_one_and_update(
            {"name": name},
            {"$set": patch, "$setOnInsert": insert_defaults},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
            session=session,
        )

    async def clear_active_if(self, price_list_id: str) -> None:
        await self._col.update_many(
            {"active_price_list_id": price_list_id},
            {"$set": {"active_price_list_id": None, "updated_at": _now_utc()}},
        )


class PriceListsRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["price_lists"]

    async def create(
        self,
        *,
        name: str,
        category: str,
        currency: str,
        effective_date: Optional[str],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Dict[str, Any]:
        now = _now_utc()
        doc = {
            "id": str(uuid4()),
            "name": name,
            "category": category,
            "currency": currency,
            "effective_date": effective_date,
            "device_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        await self._col.insert_one(doc, session=session)
        doc.pop("_id", None)
        return doc

    async def get(self, price_list_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": price_list_id}, {"_id": 0})

    async def list(self, *, category: Optional[str] = None, limit: int = 200) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if category:
            q["category"] = category
        cursor = self._col.find(q, {"_id": 0}).sort("created_at", -1).limit(int(limit))
        return [doc async for doc in cursor]

    async def set_device_count(self, price_list_id: str, count: int) -> None:
        await self._col.update_one(
            {"id": price_list_id},
            {"$set": {"device_count": int(count), "updated_at": _now_utc()}},
        )

    async def delete(self, price_list_id: str) -> bool:
        res = await self._col.delete_one({"id": price_list_id})
        return res.deleted_count == 1


class PricesRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["price_list_prices"]

    async def get(self, price_list_id: str, device_id: int) -> Optional[Dict[str, Any]]:
        doc = await self._col.find_one({"price_list_id": price_list_id, "device_id": int(device_id)}, {"_id": 0})
        return doc

    async def load_map(self, price_list_id: str, device_ids: Optional[Iterable[int]] = None) -> Dict[int, Dict[str, float]]:
        q: Dict[str, Any] = {"price_list_id": price_list_id}
        if device_ids is not None:
            q["device_id"] = {"$in": sorted({int(x) for x in device_ids})}

        cursor = self._col.find(q, {"_id": 0, "device_id": 1, "prices": 1})
        return {int(d["device_id"]): dict(d.get("prices") or {}) async for d in cursor}

    async def count(self, price_list_id: str) -> int:
        return int(await self._col.count_documents({"price_list_id": price_list_id}))

    async def upsert_many(
        self,
        price_list_id: str,
        rows: Sequence[tuple[int, Dict[str, float]]],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        if not rows:
            return 0

        now = _now_utc()
        ops = [
            UpdateOne(
                {"price_list_id": price_list_id, "device_id": int(device_id)},
                {"$set": {"prices": prices, "updated_at": now}},
                upsert=True,
            )
            for device_id, prices in rows
        ]
        res = await self._col.bulk_write(ops, ordered=True, session=session)
        return int(res.matched_count or 0) + int(len(res.upserted_ids or {}))

    async def delete_for_list(
        self,
        price_list_id: str,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        res = await self._col.delete_many({"price_list_id": price_list_id}, session=session)
        return int(res.deleted_count)


class SnapshotsRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["price_list_snapshots"]

    async def create(
        self,
        *,
        price_list_id: str,
        reason: str,
        prices: Dict[int, Dict[str, float]],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Dict[str, Any]:
        doc = {
            "id": str(uuid4()),
            "price_list_id": price_list_id,
            "reason": reason,
            "device_count": len(prices),
            "prices": [{"device_id": int(k), "prices": v} for k, v in sorted(prices.items())],
            "created_at": _now_utc(),
        }
        await self._col.insert_one(doc, session=session)
        doc.pop("_id", None)
        return doc

    async def list(self, price_list_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        cursor = (
            self._col.find({"price_list_id": price_list_id}, {"_id": 0, "prices": 0})
            .sort("created_at", -1)
            .limit(int(limit))
        )
        return [doc async for doc in cursor]
