"""
Single-device quote service.

A quote freezes the active price list's price for (device, grade) at the
moment it is created. Mode-B partners get their discounted rate; mode-A
referrals pay the list price and earn the partner commission on "paid".
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import Caches
from app.core.errors import NotFoundError
from app.core.principal import Principal
from app.features.catalog.repo import DevicesRepo
from app.features.estimates.pipeline import RateContext
from app.features.partners.service import resolve_attribution
from app.features.pricing.service import price_for
from app.features.quotes.repo import QuotesRepo
from app.features.quotes.schemas import QuoteCreate, QuoteRead

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def create_quote(
    db: AsyncIOMotorDatabase,
    caches: Caches,
    data: QuoteCreate,
    principal: Optional[Principal] = None,
) -> QuoteRead:
    attribution = await resolve_attribution(db, partner_code=data.partner_code, principal=principal)
    listed = await price_for(db, caches, device_id=data.device_id, grade=data.grade)

    device = await DevicesRepo(db).get(data.device_id) or {}
    price = RateContext(discount_percent=attribution.rate_discount).apply(listed.price)

    now = _now_utc()
    doc: Dict[str, Any] = {
        "id": str(uuid4()),
        "status": "quoted",
        "device_id": int(data.device_id),
        "device_name": device.get("name"),
        "grade": listed.grade,
        "price": price,
        "price_list_id": listed.price_list_id,
        "customer_name": data.customer_name,
        "customer_email": str(data.customer_email),
        "customer_phone": data.customer_phone,
        **attribution.as_fields(),
        "created_at": now,
        "updated_at": now,
        "quoted_at": now,
    }
    await QuotesRepo(db).insert(doc)

    logger.info(
        "create_quote quote_id=%s device_id=%s grade=%s price=%s partner_mode=%s",
        doc["id"],
        doc["device_id"],
        doc["grade"],
        price,
        attribution.partner_mode,
    )
    return QuoteRead(**doc)


async def get_quote(db: AsyncIOMotorDatabase, quote_id: str) -> QuoteRead:
    doc = await QuotesRepo(db).get(quote_id)
    if not doc:
        raise NotFoundError(code="quote_not_found", message="Quote not found", details={"quote_id": quote_id})
    return QuoteRead(**doc)
