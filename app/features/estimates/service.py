# app/features/estimates/service.py
"""
Bulk estimate service.

create_estimate():
  1) resolve partner attribution (mode A referral / mode B partner rate)
  2) load the match context + active price list once
  3) run the pure pipeline (pipeline.build_estimate)
  4) persist header, then lines in atomic chunks

If a line chunk fails, the partially written estimate is removed and a
DependencyError (503) reports how many lines had been applied.

Also here: detail fetch, line inspection, line device correction (teaches
the matcher an alias), totals recompute and CSV export.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.cache import Caches
from app.core.config import config
from app.core.errors import ConflictError, DependencyError, NotFoundError
from app.core.principal import Principal
from app.db.mongo import write_in_chunks
from app.features.aliases.service import save_alias
from app.features.catalog.repo import DevicesRepo
from app.features.estimates.manifest import ManifestRow, parse_manifest_csv, rows_from_payload
from app.features.estimates.pipeline import EstimateResult, PriceLookup, RateContext, build_estimate, price_line
from app.features.estimates.repo import BulkQuotesRepo, DeviceLinesRepo
from app.features.estimates.schemas import (
    BulkQuoteRead,
    DeviceLineRead,
    EstimateCreate,
    EstimateCsvCreate,
    EstimateDetail,
    EstimateMeta,
    LineAssignDevice,
    LineInspectionUpdate,
)
from app.features.matching.service import load_match_context
from app.features.partners.service import resolve_attribution
from app.features.pricing.repo import PricesRepo
from app.features.pricing.rounding import grade_price, normalize_grade, round2
from app.features.pricing.service import category_settings

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = {"estimated", "accepted", "received", "inspected"}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def _price_lookup(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    category: str,
    price_list_id: Optional[str],
) -> PriceLookup:
    settings = await category_settings(caches, category)
    if price_list_id is None:
        return lambda _device_id, _grade: None

    price_map = await PricesRepo(db).load_map(price_list_id)

    def _lookup(device_id: int, grade: str) -> Optional[float]:
        grades = price_map.get(int(device_id))
        if not grades:
            return None
        return grade_price(grades, grade, settings.grade_ratios, settings.rounding)

    return _lookup


def _line_doc(bulk_quote_id: str, line: Any) -> Dict[str, Any]:
    return {
        "bulk_quote_id": bulk_quote_id,
        "line_no": line.line_no,
        "raw_input": line.raw_input,
        "match_text": line.match_text,
        "device_id": line.device_id,
        "device_name": line.device_name,
        "match_confidence": line.match_confidence,
        "match_score": line.match_score,
        "needs_review": line.needs_review,
        "quantity": line.quantity,
        "assumed_grade": line.assumed_grade,
        "unit_price": line.unit_price,
        "indicative_price": line.indicative_price,
        "actual_grade": None,
        "actual_price": None,
        "inspection_notes": None,
    }


async def _persist(
    db: AsyncIOMotorDatabase,
    header: Dict[str, Any],
    result: EstimateResult,
) -> Dict[str, Any]:
    quotes = BulkQuotesRepo(db)
    lines = DeviceLinesRepo(db)
    line_docs = [_line_doc(header["id"], ln) for ln in result.lines]

    await quotes.insert(header)

    async def _chunk(chunk: Sequence[Dict[str, Any]], session: Optional[AsyncIOMotorClientSession]) -> int:
        return await lines.insert_many(chunk, session=session)

    try:
        await write_in_chunks(db, line_docs, _chunk, op="estimate_lines")
    except DependencyError:
        try:
            await lines.delete_for_quote(header["id"])
            await quotes.delete(header["id"])
        except PyMongoError:
            logger.exception("create_estimate:cleanup_failed bulk_quote_id=%s", header["id"])
        raise

    return header


async def _create(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    meta: EstimateMeta,
    rows: List[ManifestRow],
    principal: Optional[Principal],
) -> EstimateDetail:
    category = meta.category or config.default_category
    assumed_grade = normalize_grade(meta.assumed_grade or config.default_assumed_grade)

    attribution = await resolve_attribution(db, partner_code=meta.partner_code, principal=principal)
    rate = RateContext(discount_percent=attribution.rate_discount)

    settings = await category_settings(caches, category)
    if settings.active_price_list_id is None:
        logger.warning("create_estimate:no_active_price_list category=%s", category)

    result = build_estimate(
        rows,
        assumed_grade=assumed_grade,
        category=category,
        rate=rate,
        match_ctx=await load_match_context(caches),
        prices=await _price_lookup(db, caches, category, settings.active_price_list_id),
    )

    now = _now_utc()
    header: Dict[str, Any] = {
        "id": str(uuid4()),
        "status": "estimated",
        "business_name": meta.business_name,
        "contact_name": meta.contact_name,
        "contact_email": str(meta.contact_email),
        "contact_phone": meta.contact_phone,
        "category": category,
        "assumed_grade": assumed_grade,
        "price_list_id": settings.active_price_list_id,
        **attribution.as_fields(),
        "line_count": result.line_count,
        "total_devices": result.total_devices,
        "total_indicative": result.total_indicative,
        "total_final": None,
        "matched_count": result.matched_count,
        "unmatched_count": result.unmatched_count,
        "matched_units": result.matched_units,
        "created_at": now,
        "updated_at": now,
        "estimated_at": now,
    }

    await _persist(db, header, result)
    logger.info(
        "create_estimate:done bulk_quote_id=%s lines=%s devices=%s matched=%s unmatched=%s total=%s partner_mode=%s",
        header["id"],
        result.line_count,
        result.total_devices,
        result.matched_count,
        result.unmatched_count,
        result.total_indicative,
        attribution.partner_mode,
    )
    return await get_estimate(db, header["id"])


async def create_estimate(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    data: EstimateCreate,
    principal: Optional[Principal] = None,
) -> EstimateDetail:
    rows = rows_from_payload([r.model_dump() for r in data.rows])
    return await _create(db, caches, data, rows, principal)


async def create_estimate_from_csv(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    data: EstimateCsvCreate,
    principal: Optional[Principal] = None,
) -> EstimateDetail:
    rows = parse_manifest_csv(data.csv_text)
    logger.info("create_estimate_from_csv rows=%s", len(rows))
    return await _create(db, caches, data, rows, principal)


async def _require_header(db: AsyncIOMotorDatabase, bulk_quote_id: str) -> Dict[str, Any]:
    doc = await BulkQuotesRepo(db).get(bulk_quote_id)
    if not doc:
        raise NotFoundError(
            code="bulk_quote_not_found",
            message="Bulk quote not found",
            details={"bulk_quote_id": bulk_quote_id},
        )
    return doc


def _header_rate(header: Dict[str, Any]) -> RateContext:
    if header.get("partner_mode") != "B":
        return RateContext()
    return RateContext(discount_percent=float(header.get("rate_discount") or 0))


async def _require_editable_line(db: AsyncIOMotorDatabase, bulk_quote_id: str, line_no: int) -> tuple[Dict[str, Any], Dict[str, Any]]:
    header = await _require_header(db, bulk_quote_id)
    if header["status"] not in EDITABLE_STATUSES:
        raise ConflictError(
            code="bulk_quote_locked",
            message="Lines cannot change once the bulk quote is paid or cancelled",
            details={"bulk_quote_id": bulk_quote_id, "status": header["status"]},
        )
    line = await DeviceLinesRepo(db).get(bulk_quote_id, line_no)
    if not line:
        raise NotFoundError(
            code="line_not_found",
            message="Device line not found",
            details={"bulk_quote_id": bulk_quote_id, "line_no": line_no},
        )
    return header, line


async def get_estimate(db: AsyncIOMotorDatabase, bulk_quote_id: str) -> EstimateDetail:
    header = await _require_header(db, bulk_quote_id)
    lines = await DeviceLinesRepo(db).list(bulk_quote_id)
    return EstimateDetail(**header, lines=[DeviceLineRead(**ln) for ln in lines])


async def recompute_totals(db: AsyncIOMotorDatabase, bulk_quote_id: str) -> BulkQuoteRead:
    lines = await DeviceLinesRepo(db).list(bulk_quote_id)

    matched = [ln for ln in lines if ln.get("device_id") is not None]
    inspected = any(ln.get("actual_price") is not None for ln in lines)
    final = sum(
        (float(ln["actual_price"]) * int(ln["quantity"])) if ln.get("actual_price") is not None
        else float(ln.get("indicative_price") or 0)
        for ln in lines
    )

    doc = await BulkQuotesRepo(db).set_fields(
        bulk_quote_id,
        {
            "line_count": len(lines),
            "total_devices": sum(int(ln["quantity"]) for ln in lines),
            "total_indicative": round2(sum(float(ln.get("indicative_price") or 0) for ln in lines)),
            "total_final": round2(final) if inspected else None,
            "matched_count": len(matched),
            "unmatched_count": len(lines) - len(matched),
            "matched_units": sum(int(ln["quantity"]) for ln in matched),
        },
    )
    return BulkQuoteRead(**doc)


async def update_line_inspection(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    bulk_quote_id: str,
    line_no: int,
    data: LineInspectionUpdate,
) -> DeviceLineRead:
    header, line = await _require_editable_line(db, bulk_quote_id, line_no)
    patch: Dict[str, Any] = {}

    if data.actual_grade is not None:
        patch["actual_grade"] = normalize_grade(data.actual_grade)
    if data.inspection_notes is not None:
        patch["inspection_notes"] = data.inspection_notes

    if data.actual_price is not None:
        patch["actual_price"] = round2(data.actual_price)
    elif "actual_grade" in patch and line.get("device_id") is not None:
        lookup = await _price_lookup(db, caches, header["category"], header.get("price_list_id"))
        unit, _total, priced = price_line(
            line["device_id"],
            patch["actual_grade"],
            1,
            lookup,
            _header_rate(header),
        )
        if priced:
            patch["actual_price"] = unit

    updated = await DeviceLinesRepo(db).update(bulk_quote_id, line_no, patch) if patch else line
    await recompute_totals(db, bulk_quote_id)
    logger.info("update_line_inspection bulk_quote_id=%s line_no=%s fields=%s", bulk_quote_id, line_no, sorted(patch))
    return DeviceLineRead(**updated)


async def assign_line_device(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    bulk_quote_id: str,
    line_no: int,
    data: LineAssignDevice,
) -> DeviceLineRead:
    """
    Correct (or accept) a line's device. The text the matcher saw (make and
    storage columns folded in) becomes an alias:
    created_by="auto" when accepting the suggested device, "admin" otherwise.
    """
    header, line = await _require_editable_line(db, bulk_quote_id, line_no)

    device = await DevicesRepo(db).get(data.device_id)
    if not device:
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": data.device_id})

    created_by = "auto" if line.get("device_id") == data.device_id else "admin"
    raw_text = line.get("match_text") or line["raw_input"]
    await save_alias(db, caches, raw_text=raw_text, device_id=data.device_id, created_by=created_by)

    lookup = await _price_lookup(db, caches, header["category"], header.get("price_list_id"))
    unit, indicative, _priced = price_line(
        data.device_id, line["assumed_grade"], int(line["quantity"]), lookup, _header_rate(header)
    )

    updated = await DeviceLinesRepo(db).update(
        bulk_quote_id,
        line_no,
        {
            "device_id": int(data.device_id),
            "device_name": device.get("name"),
            "match_confidence": "high",
            "match_score": 1.0,
            "needs_review": False,
            "unit_price": unit,
            "indicative_price": indicative,
        },
    )
    await recompute_totals(db, bulk_quote_id)
    logger.info(
        "assign_line_device bulk_quote_id=%s line_no=%s device_id=%s alias_by=%s",
        bulk_quote_id,
        line_no,
        data.device_id,
        created_by,
    )
    return DeviceLineRead(**updated)


EXPORT_COLUMNS = (
    "line_no",
    "raw_input",
    "device_id",
    "device_name",
    "match_confidence",
    "quantity",
    "assumed_grade",
    "unit_price",
    "indicative_price",
    "actual_grade",
    "actual_price",
    "inspection_notes",
)


async def export_estimate_csv(db: AsyncIOMotorDatabase, bulk_quote_id: str) -> str:
    await _require_header(db, bulk_quote_id)
    lines = await DeviceLinesRepo(db).list(bulk_quote_id)

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for ln in lines:
        writer.writerow(["" if ln.get(c) is None else ln.get(c) for c in EXPORT_COLUMNS])
    return buf.getvalue()
