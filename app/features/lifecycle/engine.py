# app/features/lifecycle/engine.py
"""
Status Lifecycle Engine: one transition interpreter for every entity.

apply_transition(spec, entity_id, target, payload):

  1) re-fetch the entity (the status read here is the one validated)
  2) validate target against the entity's table
  3) spec.pre_check   -> may raise ValidationError (e.g. shipped needs tracking)
  4) spec.extra_fields -> fields written together with the status
  5) write: compare-and-set on the status read in (1), plus spec.on_commit,
     inside one transaction; losing the race -> ConflictError
  6) re-fetch, then run spec.post_commit hooks

Post-commit hooks are best effort. Each returns a SideEffectOutcome; an
exception inside a hook is logged and reported as a failed outcome. The
transition itself is already committed and is never rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.core.errors import BestEffortError, ConflictError, NotFoundError, SideEffectOutcome
from app.db.mongo import run_in_transaction
from app.features.lifecycle.tables import TransitionTable, check_transition

logger = logging.getLogger(__name__)

Doc = Dict[str, Any]


@dataclass
class TransitionContext:
    db: AsyncIOMotorDatabase
    notifier: Any = None


PreCheck = Callable[[TransitionContext, Doc, str, Doc], Awaitable[None]]
ExtraFields = Callable[[Doc, str, Doc], Doc]
OnCommit = Callable[[TransitionContext, Doc, str, Optional[AsyncIOMotorClientSession]], Awaitable[None]]
PostCommit = Callable[[TransitionContext, Doc, str], Awaitable[Optional[SideEffectOutcome]]]


@dataclass(frozen=True)
class EntitySpec:
    kind: str  # "quote" | "bulk_quote" | "order"
    collection: str
    table: TransitionTable
    known_statuses: FrozenSet[str]
    not_found_code: str
    pre_check: Optional[PreCheck] = None
    extra_fields: Optional[ExtraFields] = None
    on_commit: Optional[OnCommit] = None
    # (side effect name, hook)
    post_commit: tuple[tuple[str, PostCommit], ...] = ()


@dataclass
class TransitionResult:
    entity: Doc
    previous_status: str
    status: str
    side_effects: List[SideEffectOutcome] = field(default_factory=list)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def _load(ctx: TransitionContext, spec: EntitySpec, entity_id: str) -> Doc:
    doc = await ctx.db[spec.collection].find_one({"id": entity_id}, {"_id": 0})
    if not doc:
        raise NotFoundError(
            code=spec.not_found_code,
            message=f"{spec.kind} not found",
            details={"id": entity_id},
        )
    return doc


async def _run_post_commit(ctx: TransitionContext, spec: EntitySpec, doc: Doc, target: str) -> List[SideEffectOutcome]:
    outcomes: List[SideEffectOutcome] = []
    for name, hook in spec.post_commit:
        try:
            outcome = await hook(ctx, doc, target)
        except Exception as exc:  # noqa: BLE001
            logger.exception("transition:side_effect_failed kind=%s id=%s effect=%s", spec.kind, doc.get("id"), name)
            err = BestEffortError(name, str(exc) or exc.__class__.__name__)
            outcome = SideEffectOutcome(name=name, ok=False, error=err)
        if outcome is not None:
            outcomes.append(outcome)
    return outcomes


async def apply_transition(
    ctx: TransitionContext,
    spec: EntitySpec,
    entity_id: str,
    target: str,
    payload: Optional[Doc] = None,
) -> TransitionResult:
    payload = dict(payload or {})
    col = ctx.db[spec.collection]

    doc = await _load(ctx, spec, entity_id)
    current = str(doc.get("status"))
    check_transition(spec.table, spec.known_statuses, current, target)

    if spec.pre_check is not None:
        await spec.pre_check(ctx, doc, target, payload)

    now = _now_utc()
    update: Doc = dict(spec.extra_fields(doc, target, payload)) if spec.extra_fields else {}
    update.update({"status": target, f"{target}_at": now, "updated_at": now})

    async def _write(session: Optional[AsyncIOMotorClientSession]) -> None:
        res = await col.update_one({"id": entity_id, "status": current}, {"$set": update}, session=session)
        if res.matched_count == 0:
            # Someone else moved it between our read and this write.
            raise ConflictError(
                code="stale_status",
                message="Status changed concurrently; re-read and retry",
                details={"expected": current, "requested": target},
            )
        if spec.on_commit is not None:
            await spec.on_commit(ctx, doc, target, session)

    await run_in_transaction(ctx.db, _write)

    after = await _load(ctx, spec, entity_id)
    logger.info("transition:done kind=%s id=%s %s->%s", spec.kind, entity_id, current, target)

    outcomes = await _run_post_commit(ctx, spec, after, target)
    return TransitionResult(entity=after, previous_status=current, status=target, side_effects=outcomes)
