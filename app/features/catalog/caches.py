# app/features/catalog/caches.py
"""
Builds the Caches bundle held on app.state.

devices     list[CandidateDevice]      (all devices; the matcher filters inactive)
aliases     dict[alias_key, device_id]
categories  dict[category_name, category doc]  (settings + active price list)
"""

from __future__ import annotations

from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches, TTLCache
from app.core.config import config
from app.features.aliases.repo import AliasesRepo
from app.features.catalog.repo import DevicesRepo
from app.features.matching.matcher import CandidateDevice
from app.features.pricing.repo import CategoriesRepo


def build_caches(db: AsyncIOMotorDatabase) -> Caches:
    async def _load_devices() -> List[CandidateDevice]:
        docs = await DevicesRepo(db).list_all()
        return [
            CandidateDevice(
                device_id=int(d["device_id"]),
                make=str(d.get("make") or ""),
                model=str(d.get("model") or ""),
                storage=str(d.get("storage") or ""),
                category=str(d.get("category") or config.default_category),
                active=bool(d.get("active", True)),
            )
            for d in docs
        ]

    async def _load_aliases() -> Dict[str, int]:
        return await AliasesRepo(db).load_index()

    async def _load_categories() -> Dict[str, Dict[str, Any]]:
        return {str(d["name"]): d for d in await CategoriesRepo(db).list_all()}

    return Caches(
        devices=TTLCache("devices", _load_devices, ttl_seconds=config.device_cache_ttl_seconds),
        aliases=TTLCache("aliases", _load_aliases, ttl_seconds=config.device_cache_ttl_seconds),
        categories=TTLCache("categories", _load_categories, ttl_seconds=config.price_cache_ttl_seconds),
    )
