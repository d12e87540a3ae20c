# app/features/lifecycle/service.py
from __future__ import annotations

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.features.lifecycle.engine import EntitySpec, TransitionContext, TransitionResult, apply_transition
from app.features.lifecycle.schemas import SideEffectRead, TransitionRequest, TransitionResponse
from app.features.lifecycle.specs import BULK_QUOTE_SPEC, ORDER_SPEC, QUOTE_SPEC
from app.features.notifications.service import Notifier


def _to_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        entity=result.entity,
        previous_status=result.previous_status,
        status=result.status,
        side_effects=[SideEffectRead(**o.as_dict()) for o in result.side_effects],
    )


async def _transition(
    db: AsyncIOMotorDatabase,
    notifier: Optional[Notifier],
    spec: EntitySpec,
    entity_id: str,
    req: TransitionRequest,
) -> TransitionResponse:
    ctx = TransitionContext(db=db, notifier=notifier)
    payload = req.model_dump(exclude={"status"}, exclude_none=True)
    result = await apply_transition(ctx, spec, entity_id, req.status.strip().lower(), payload)
    return _to_response(result)


async def transition_quote(
    db: AsyncIOMotorDatabase, notifier: Optional[Notifier], quote_id: str, req: TransitionRequest
) -> TransitionResponse:
    return await _transition(db, notifier, QUOTE_SPEC, quote_id, req)


async def transition_bulk_quote(
    db: AsyncIOMotorDatabase, notifier: Optional[Notifier], bulk_quote_id: str, req: TransitionRequest
) -> TransitionResponse:
    return await _transition(db, notifier, BULK_QUOTE_SPEC, bulk_quote_id, req)


async def transition_order(
    db: AsyncIOMotorDatabase, notifier: Optional[Notifier], order_id: str, req: TransitionRequest
) -> TransitionResponse:
    return await _transition(db, notifier, ORDER_SPEC, order_id, req)
