# app/features/orders/service.py
"""
Shop: resale inventory and orders.

Checkout reserves every inventory item (listed -> sold) and writes the
order as one unit; an item that is no longer listed fails the whole
checkout. Payment confirmation moves the order pending -> paid; from there
the lifecycle engine owns its status (see app.features.lifecycle).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.mongo import run_in_transaction
from app.features.catalog.repo import DevicesRepo
from app.features.orders.repo import InventoryRepo, OrdersRepo
from app.features.orders.schemas import InventoryCreate, InventoryRead, OrderCreate, OrderRead, PaymentConfirm
from app.features.pricing.rounding import normalize_grade, round2

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def add_inventory_item(db: AsyncIOMotorDatabase, data: InventoryCreate) -> InventoryRead:
    device = await DevicesRepo(db).get(data.device_id)
    if not device:
        raise NotFoundError(code="device_not_found", message="Device not found", details={"device_id": data.device_id})

    doc = await InventoryRepo(db).create(
        {
            "device_id": int(data.device_id),
            "device_name": device.get("name"),
            "grade": normalize_grade(data.grade),
            "price": round2(data.price),
            "source_quote_id": data.source_quote_id,
        }
    )
    logger.info("add_inventory_item inventory_id=%s device_id=%s", doc["inventory_id"], doc["device_id"])
    return InventoryRead(**doc)


async def list_inventory(db: AsyncIOMotorDatabase, *, status: Optional[str] = None, limit: int = 500) -> list[InventoryRead]:
    return [InventoryRead(**d) for d in await InventoryRepo(db).list(status=status, limit=limit)]


async def create_order(db: AsyncIOMotorDatabase, data: OrderCreate) -> OrderRead:
    ids = [int(x) for x in data.inventory_ids]
    if len(set(ids)) != len(ids):
        raise ValidationError(code="inventory_ids", message="Duplicate inventory ids in order")

    inventory = InventoryRepo(db)
    stock = await inventory.get_many(ids)
    missing = [i for i in ids if i not in stock]
    if missing:
        raise NotFoundError(
            code="inventory_not_found",
            message="Inventory item not found",
            details={"inventory_ids": missing},
        )

    items: List[Dict[str, Any]] = [
        {
            "inventory_id": i,
            "device_id": int(stock[i]["device_id"]),
            "device_name": stock[i].get("device_name"),
            "grade": stock[i]["grade"],
            "price": float(stock[i]["price"]),
        }
        for i in ids
    ]
    subtotal = round2(sum(it["price"] for it in items) + sum(a.price for a in data.add_ons))

    now = _now_utc()
    doc: Dict[str, Any] = {
        "id": str(uuid4()),
        "status": "pending",
        "items": items,
        "add_ons": [a.model_dump() for a in data.add_ons],
        "subtotal": subtotal,
        "shipping": round2(data.shipping),
        "total": round2(subtotal + data.shipping),
        "customer_email": str(data.customer_email),
        "shipping_address": data.shipping_address.model_dump(),
        "created_at": now,
        "updated_at": now,
    }

    async def _txn(session: Optional[AsyncIOMotorClientSession]) -> Dict[str, Any]:
        reserved: List[int] = []
        for inventory_id in ids:
            if not await inventory.reserve(inventory_id, session=session):
                if session is None and reserved:
                    # No transaction to roll back: release what we took.
                    await inventory.relist_many(reserved)
                raise ConflictError(
                    code="item_unavailable",
                    message="Inventory item is no longer available",
                    details={"inventory_id": inventory_id},
                )
            reserved.append(inventory_id)
        return await OrdersRepo(db).insert(doc, session=session)

    created = await run_in_transaction(db, _txn)
    logger.info("create_order order_id=%s items=%s total=%s", created["id"], len(items), created["total"])
    return OrderRead(**created)


async def get_order(db: AsyncIOMotorDatabase, order_id: str) -> OrderRead:
    doc = await OrdersRepo(db).get(order_id)
    if not doc:
        raise NotFoundError(code="order_not_found", message="Order not found", details={"order_id": order_id})
    return OrderRead(**doc)


async def confirm_payment(db: AsyncIOMotorDatabase, order_id: str, data: PaymentConfirm) -> OrderRead:
    repo = OrdersRepo(db)
    doc = await repo.mark_paid(order_id, data.payment_reference)
    if doc is None:
        current = await repo.get(order_id)
        if not current:
            raise NotFoundError(code="order_not_found", message="Order not found", details={"order_id": order_id})
        raise ConflictError(
            code="invalid_transition",
            message="Only pending orders can be paid",
            details={"current": current.get("status"), "requested": "paid", "allowed": []},
        )

    logger.info("confirm_payment order_id=%s reference=%s", order_id, data.payment_reference)
    return OrderRead(**doc)
