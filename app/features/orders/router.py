# app/features/orders/router.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_db
from app.features.orders.schemas import InventoryCreate, InventoryRead, OrderCreate, OrderRead, PaymentConfirm
from app.features.orders.service import add_inventory_item, confirm_payment, create_order, get_order, list_inventory

router = APIRouter(tags=["orders"])


@router.post("/inventory", response_model=InventoryRead, status_code=201)
async def add_inventory_endpoint(payload: InventoryCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await add_inventory_item(db, payload)


@router.get("/inventory", response_model=list[InventoryRead])
async def list_inventory_endpoint(
    db: AsyncIOMotorDatabase = Depends(get_db),
    status: str | None = Query(None, pattern="^(listed|sold)$"),
    limit: int = Query(500, ge=1, le=5000),
):
    return await list_inventory(db, status=status, limit=limit)


@router.post("/orders", response_model=OrderRead, status_code=201)
async def create_order_endpoint(payload: OrderCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await create_order(db, payload)


@router.get("/orders/{order_id}", response_model=OrderRead)
async def get_order_endpoint(order_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await get_order(db, order_id)


@router.post("/orders/{order_id}/payment", response_model=OrderRead)
async def confirm_payment_endpoint(order_id: str, payload: PaymentConfirm, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Called by the payment provider integration once funds are captured.
    return await confirm_payment(db, order_id, payload)
