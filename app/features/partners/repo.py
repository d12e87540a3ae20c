"""
Partners, commission ledger and payouts persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConflictError, NotFoundError


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    return str(code).strip().upper()


class PartnersRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["partners"]

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = _now_utc()
        doc = {
            **data,
            "id": str(uuid4()),
            "code": normalize_code(data["code"]),
            "status": "active",
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self._col.insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConflictError(code="partner_exists", message="Partner code already in use") from exc

        doc.pop("_id", None)
        return doc

    async def get(self, partner_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"id": partner_id}, {"_id": 0})

    async def get_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one({"code": normalize_code(code)}, {"_id": 0})

    async def list(self, *, status: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if status:
            q["status"] = status
        cursor = self._col.find(q, {"_id": 0}).sort("code", 1).limit(int(limit))
        return [doc async for doc in cursor]

    async def update(self, partner_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        patch = {k: v for k, v in patch.items() if v is not None}
        patch["updated_at"] = _now_utc()

        doc = await self._col.find_one_and_update(
            {"id": partner_id},
            {"$set": patch},
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )
        if not doc:
            raise NotFoundError(code="partner_not_found", message="Partner not found", details={"partner_id": partner_id})
        return doc


class LedgerRepo:
    """
    commission_ledger. One entry per (partner_id, source_kind, source_id),
    guaranteed by a unique index; a second insert raises DuplicateKeyError.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["commission_ledger"]

    async def insert(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        doc = {
            **entry,
            "id": str(uuid4()),
            "status": "pending",
            "created_at": _now_utc(),
            "paid_at": None,
            "payout_id": None,
        }
        await self._col.insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def get_for_source(self, partner_id: str, source_kind: str, source_id: str) -> Optional[Dict[str, Any]]:
        return await self._col.find_one(
            {"partner_id": partner_id, "source_kind": source_kind, "source_id": source_id},
            {"_id": 0},
        )

    async def list(
        self,
        partner_id: str,
        *,
        status: Optional[str] = None,
        limit: int = 1000,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {"partner_id": partner_id}
        if status:
            q["status"] = status
        cursor = self._col.find(q, {"_id": 0}, session=session).sort("created_at", -1).limit(int(limit))
        return [doc async for doc in cursor]

    async def period_device_count(self, partner_id: str, period: str) -> int:
        cursor = self._col.find({"partner_id": partner_id, "period": period}, {"_id": 0, "device_count": 1})
        return sum([int(d.get("device_count") or 0) async for d in cursor])

    async def claim_for_payout(
        self,
        *,
        partner_id: str,
        entry_ids: List[str],
        payout_id: str,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Dict[str, Any]]:
        """
        Conditionally mark entries paid. Only entries that are still pending
        and unclaimed flip, so two concurrent payouts never share an entry.
        Returns the entries this payout actually claimed.
        """
        now = _now_utc()
        await self._col.update_many(
            {
                "partner_id": partner_id,
                "id": {"$in": list(entry_ids)},
                "status": "pending",
                "payout_id": None,
            },
            {"$set": {"status": "paid", "paid_at": now, "payout_id": payout_id}},
            session=session,
        )
        cursor = self._col.find({"payout_id": payout_id}, {"_id": 0}, session=session)
        return [doc async for doc in cursor]


class PayoutsRepo:
    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db["payouts"]

    async def insert(self, doc: Dict[str, Any], session: Optional[AsyncIOMotorClientSession] = None) -> Dict[str, Any]:
        doc = {**doc, "created_at": _now_utc()}
        await self._col.insert_one(doc, session=session)
        doc.pop("_id", None)
        return doc

    async def list(self, partner_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        cursor = self._col.find({"partner_id": partner_id}, {"_id": 0}).sort("created_at", -1).limit(int(limit))
        return [doc async for doc in cursor]
