# app/features/lifecycle/router.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_db
from app.features.lifecycle.schemas import TransitionRequest, TransitionResponse
from app.features.lifecycle.service import transition_bulk_quote, transition_order, transition_quote
from app.features.notifications.service import Notifier, get_notifier

router = APIRouter(tags=["lifecycle"])


@router.patch("/quotes/{quote_id}/status", response_model=TransitionResponse)
async def transition_quote_endpoint(
    quote_id: str,
    payload: TransitionRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await transition_quote(db, notifier, quote_id, payload)


@router.patch("/estimates/{bulk_quote_id}/status", response_model=TransitionResponse)
async def transition_bulk_quote_endpoint(
    bulk_quote_id: str,
    payload: TransitionRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await transition_bulk_quote(db, notifier, bulk_quote_id, payload)


@router.patch("/orders/{order_id}/status", response_model=TransitionResponse)
async def transition_order_endpoint(
    order_id: str,
    payload: TransitionRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await transition_order(db, notifier, order_id, payload)
