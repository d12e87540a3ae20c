# app/features/pricing/service.py
"""
Pricing Resolver.

- price_for(): (device, grade, price list) -> amount
- price-list ingestion (auto-creates unseen devices), replace, activate, delete
- per-category pricing settings (rounding unit + grade ratios)
- bulk_adjust(): percent / dollar / set_ratios in atomic chunks

Every price overwrite writes a snapshot of the previous prices first.
Every write that changes what the matcher or pricer sees invalidates the
matching cache on app.state.caches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.core.cache import Caches
from app.core.config import config
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.mongo import write_in_chunks
from app.features.catalog.repo import DevicesRepo
from app.features.catalog.service import ensure_device
from app.features.pricing.repo import CategoriesRepo, PriceListsRepo, PricesRepo, SnapshotsRepo
from app.features.pricing.rounding import (
    DEFAULT_ROUNDING,
    adjust_grades,
    complete_grades,
    grade_price,
    merged_ratios,
    normalize_grade,
)
from app.features.pricing.schemas import (
    BulkAdjustRequest,
    BulkAdjustResult,
    DevicePrices,
    GradePrices,
    IngestResult,
    PriceListCreate,
    PriceListDetail,
    PriceListRead,
    PriceQuoteRead,
    PriceRow,
    PricingSettingsRead,
    PricingSettingsUpdate,
    SnapshotRead,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategorySettings:
    category: str
    rounding: float
    grade_ratios: Dict[str, float]
    active_price_list_id: Optional[str]


async def category_settings(caches: Caches, category: str) -> CategorySettings:
    docs: Dict[str, Dict[str, Any]] = await caches.categories.get()
    doc = docs.get(category) or {}
    rounding = doc.get("rounding")
    return CategorySettings(
        category=category,
        rounding=float(rounding) if rounding is not None else DEFAULT_ROUNDING,
        grade_ratios=merged_ratios(doc.get("grade_ratios")),
        active_price_list_id=doc.get("active_price_list_id"),
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _settings_read(s: CategorySettings) -> PricingSettingsRead:
    return PricingSettingsRead(
        category=s.category,
        rounding=s.rounding,
        grade_ratios=s.grade_ratios,
        active_price_list_id=s.active_price_list_id,
    )


async def get_settings(caches: Caches, category: str) -> PricingSettingsRead:
    return _settings_read(await category_settings(caches, category))


async def update_settings(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    category: str,
    patch: PricingSettingsUpdate,
) -> PricingSettingsRead:
    update: Dict[str, Any] = {}
    if patch.rounding is not None:
        update["rounding"] = float(patch.rounding)
    if patch.grade_ratios is not None:
        current = await category_settings(caches, category)
        update["grade_ratios"] = merged_ratios({**current.grade_ratios, **patch.grade_ratios})

    logger.info("update_settings category=%s fields=%s", category, sorted(update.keys()))
    await CategoriesRepo(db).upsert(category, update)
    caches.categories.invalidate()

    return await get_settings(caches, category)


# ---------------------------------------------------------------------------
# Price lists
# ---------------------------------------------------------------------------


def _list_read(doc: Dict[str, Any], active_id: Optional[str]) -> PriceListRead:
    return PriceListRead(**doc, active=(doc["id"] == active_id))


async def _require_list(db: AsyncIOMotorDatabase, price_list_id: str) -> Dict[str, Any]:
    doc = await PriceListsRepo(db).get(price_list_id)
    if not doc:
        raise NotFoundError(
            code="price_list_not_found",
            message="Price list not found",
            details={"price_list_id": price_list_id},
        )
    return doc


async def _resolve_rows(
    db: AsyncIOMotorDatabase,
    rows: Sequence[PriceRow],
    *,
    category: str,
    settings: CategorySettings,
) -> tuple[List[tuple[int, Dict[str, float]]], int]:
    """
    Turn sheet rows into (device_id, full A..E prices). Unknown devices are
    created. Returns (resolved, devices_created). Later rows for the same
    device override earlier ones.
    """
    devices = DevicesRepo(db)
    resolved: Dict[int, Dict[str, float]] = {}
    created = 0

    for idx, row in enumerate(rows, start=1):
        if row.device_id is not None:
            if not await devices.get(row.device_id):
                raise NotFoundError(
                    code="device_not_found",
                    message="Device not found",
                    details={"row": idx, "device_id": row.device_id},
                )
            device_id = int(row.device_id)
        else:
            device_id, was_created = await ensure_device(
                db,
                make=str(row.make),
                model=str(row.model),
                storage=row.storage,
                category=category,
            )
            created += int(was_created)

        try:
            prices = complete_grades(row.given(), settings.grade_ratios, settings.rounding)
        except ValidationError as exc:
            exc.details = {**(exc.details or {}), "row": idx}
            raise

        resolved[device_id] = prices

    return list(resolved.items()), created


async def _write_prices(
    db: AsyncIOMotorDatabase,
    price_list_id: str,
    rows: List[tuple[int, Dict[str, float]]],
    *,
    op: str,
) -> int:
    repo = PricesRepo(db)

    async def _chunk(chunk: Sequence[tuple[int, Dict[str, float]]], session: Optional[AsyncIOMotorClientSession]) -> int:
        return await repo.upsert_many(price_list_id, chunk, session=session)

    return await write_in_chunks(db, rows, _chunk, op=op)


async def create_price_list(db: AsyncIOMotorDatabase, caches: Caches, data: PriceListCreate) -> IngestResult:
    category = data.category or config.default_category
    settings = await category_settings(caches, category)

    logger.info("create_price_list:start name=%s category=%s rows=%s", data.name, category, len(data.rows))

    resolved, created = await _resolve_rows(db, data.rows, category=category, settings=settings)
    if created:
        caches.devices.invalidate()

    lists = PriceListsRepo(db)
    doc = await lists.create(
        name=data.name,
        category=category,
        currency=data.currency or config.default_currency,
        effective_date=data.effective_date,
    )
    written = await _write_prices(db, doc["id"], resolved, op="price_list_ingest")
    await lists.set_device_count(doc["id"], await PricesRepo(db).count(doc["id"]))

    if data.activate:
        await activate_price_list(db, caches, doc["id"])

    logger.info(
        "create_price_list:done price_list_id=%s rows_written=%s devices_created=%s",
        doc["id"],
        written,
        created,
    )
    return IngestResult(
        price_list=await get_price_list(db, caches, doc["id"]),
        rows_written=len(resolved),
        devices_created=created,
    )


async def replace_prices(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    price_list_id: str,
    rows: Sequence[PriceRow],
) -> IngestResult:
    """Overwrite a list's prices with `rows`; devices not in `rows` are dropped."""
    header = await _require_list(db, price_list_id)
    settings = await category_settings(caches, header["category"])

    resolved, created = await _resolve_rows(db, rows, category=header["category"], settings=settings)
    if created:
        caches.devices.invalidate()

    prices = PricesRepo(db)
    previous = await prices.load_map(price_list_id)
    if previous:
        await SnapshotsRepo(db).create(price_list_id=price_list_id, reason="replace", prices=previous)

    await _write_prices(db, price_list_id, resolved, op="price_list_replace")

    keep = {device_id for device_id, _ in resolved}
    stale = [d for d in previous if d not in keep]
    if stale:
        await db["price_list_prices"].delete_many({"price_list_id": price_list_id, "device_id": {"$in": stale}})

    await PriceListsRepo(db).set_device_count(price_list_id, await prices.count(price_list_id))
    logger.info(
        "replace_prices price_list_id=%s rows=%s dropped=%s snapshot_devices=%s",
        price_list_id,
        len(resolved),
        len(stale),
        len(previous),
    )
    return IngestResult(
        price_list=await get_price_list(db, caches, price_list_id),
        rows_written=len(resolved),
        devices_created=created,
    )


async def list_price_lists(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    *,
    category: Optional[str] = None,
    limit: int = 200,
) -> list[PriceListRead]:
    docs = await PriceListsRepo(db).list(category=category, limit=limit)
    active: Dict[str, Dict[str, Any]] = await caches.categories.get()
    return [_list_read(d, (active.get(d["category"]) or {}).get("active_price_list_id")) for d in docs]


async def get_price_list(db: AsyncIOMotorDatabase, caches: Caches, price_list_id: str) -> PriceListRead:
    doc = await _require_list(db, price_list_id)
    settings = await category_settings(caches, doc["category"])
    return _list_read(doc, settings.active_price_list_id)


async def get_price_list_detail(db: AsyncIOMotorDatabase, caches: Caches, price_list_id: str) -> PriceListDetail:
    head = await get_price_list(db, caches, price_list_id)
    prices = await PricesRepo(db).load_map(price_list_id)
    return PriceListDetail(
        **head.model_dump(),
        prices=[DevicePrices(device_id=k, prices=v) for k, v in sorted(prices.items())],
    )


async def activate_price_list(db: AsyncIOMotorDatabase, caches: Caches, price_list_id: str) -> PriceListRead:
    doc = await _require_list(db, price_list_id)

    # One pointer per category; activating replaces the previous list.
    await CategoriesRepo(db).upsert(doc["category"], {"active_price_list_id": price_list_id})
    caches.categories.invalidate()
    logger.info("activate_price_list price_list_id=%s category=%s", price_list_id, doc["category"])

    return _list_read(doc, price_list_id)


async def delete_price_list(db: AsyncIOMotorDatabase, caches: Caches, price_list_id: str) -> None:
    doc = await _require_list(db, price_list_id)
    settings = await category_settings(caches, doc["category"])
    if settings.active_price_list_id == price_list_id:
        raise ConflictError(
            code="price_list_active",
            message="Cannot delete the active price list; activate another list first",
            details={"price_list_id": price_list_id},
        )

    removed = await PricesRepo(db).delete_for_list(price_list_id)
    await PriceListsRepo(db).delete(price_list_id)
    await CategoriesRepo(db).clear_active_if(price_list_id)
    caches.categories.invalidate()
    logger.info("delete_price_list price_list_id=%s prices_removed=%s", price_list_id, removed)


async def set_device_price(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    price_list_id: str,
    device_id: int,
    data: GradePrices,
) -> DevicePrices:
    header = await _require_list(db, price_list_id)
    settings = await category_settings(caches, header["category"])
    if not await DevicesRepo(db).get(device_id):
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": device_id})

    prices = PricesRepo(db)
    existing = await prices.get(price_list_id, device_id)
    merged = {**((existing or {}).get("prices") or {}), **data.given()}
    full = complete_grades(merged, settings.grade_ratios, settings.rounding)

    if existing:
        await SnapshotsRepo(db).create(
            price_list_id=price_list_id,
            reason="device_edit",
            prices={int(device_id): existing.get("prices") or {}},
        )

    await prices.upsert_many(price_list_id, [(int(device_id), full)])
    await PriceListsRepo(db).set_device_count(price_list_id, await prices.count(price_list_id))
    logger.info("set_device_price price_list_id=%s device_id=%s", price_list_id, device_id)

    return DevicePrices(device_id=int(device_id), prices=full)


async def list_snapshots(db: AsyncIOMotorDatabase, price_list_id: str, limit: int = 50) -> list[SnapshotRead]:
    await _require_list(db, price_list_id)
    docs = await SnapshotsRepo(db).list(price_list_id, limit=limit)
    return [SnapshotRead(**d) for d in docs]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def active_price_list_id(caches: Caches, category: str) -> Optional[str]:
    return (await category_settings(caches, category)).active_price_list_id


async def price_for(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    *,
    device_id: int,
    grade: str,
    price_list_id: Optional[str] = None,
) -> PriceQuoteRead:
    """
    Price of one device at one grade. Without price_list_id the active list
    of the device's category is used.
    """
    g = normalize_grade(grade)

    device = await DevicesRepo(db).get(device_id)
    if not device:
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": device_id})

    if price_list_id is None:
        price_list_id = await active_price_list_id(caches, device["category"])
        if price_list_id is None:
            raise NotFoundError(
                code="no_active_price_list",
                message="No active price list for category",
                details={"category": device["category"]},
            )
        header = {"category": device["category"]}
    else:
        header = await _require_list(db, price_list_id)

    settings = await category_settings(caches, header["category"])
    doc = await PricesRepo(db).get(price_list_id, device_id)
    amount = grade_price((doc or {}).get("prices") or {}, g, settings.grade_ratios, settings.rounding)
    if amount is None:
        raise NotFoundError(
            code="price_not_found",
            message="No price for device in price list",
            details={"device_id": device_id, "price_list_id": price_list_id},
        )

    return PriceQuoteRead(price_list_id=price_list_id, device_id=int(device_id), grade=g, price=amount)


# ---------------------------------------------------------------------------
# Bulk adjust
# ---------------------------------------------------------------------------


async def bulk_adjust(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    price_list_id: str,
    data: BulkAdjustRequest,
) -> BulkAdjustResult:
    header = await _require_list(db, price_list_id)
    settings = await category_settings(caches, header["category"])

    prices = PricesRepo(db)
    current = await prices.load_map(price_list_id, data.device_ids)
    if data.device_ids is not None:
        missing = sorted({int(x) for x in data.device_ids} - set(current))
        if missing:
            logger.warning("bulk_adjust:missing price_list_id=%s device_ids=%s", price_list_id, missing[:20])

    # Compute everything up front: a bad row fails before any write.
    updated_rows: List[tuple[int, Dict[str, float]]] = []
    for device_id, grades in sorted(current.items()):
        if grades.get("A") is None:
            continue
        updated_rows.append(
            (device_id, adjust_grades(grades, data.operation, data.value, settings.grade_ratios, settings.rounding))
        )

    logger.info(
        "bulk_adjust:start price_list_id=%s op=%s value=%s devices=%s",
        price_list_id,
        data.operation,
        data.value,
        len(updated_rows),
    )

    if updated_rows:
        await SnapshotsRepo(db).create(
            price_list_id=price_list_id,
            reason=f"bulk_adjust:{data.operation}",
            prices={d: current[d] for d, _ in updated_rows},
        )
        await _write_prices(db, price_list_id, updated_rows, op="bulk_adjust")

    logger.info("bulk_adjust:done price_list_id=%s updated=%s", price_list_id, len(updated_rows))
    return BulkAdjustResult(
        price_list_id=price_list_id,
        operation=data.operation,
        requested=len(data.device_ids) if data.device_ids is not None else len(current),
        updated=len(updated_rows),
    )
