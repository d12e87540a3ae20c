# app/db/mongo.py
"""
MongoDB connection + FastAPI dependency.

- Connects once at app startup (lifespan).
- Stores db on app.state.db
- Creates required indexes in an idempotent way.
- Provides the store primitives the engine relies on:
    run_in_transaction(): one atomic multi-document unit of work
    write_in_chunks():    large writes split into atomic chunks
    next_sequence():      serialized numeric id allocation
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timezone
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from fastapi import FastAPI, Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from app.core.config import config
from app.core.errors import DependencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

COUNTERS_COL = "counters"


async def _ensure_index(col, keys, **kwargs) -> None:
    """
    Create an index if it doesn't exist.

    If an index with the same keys already exists under a different name,
    Mongo raises code=85 (IndexOptionsConflict). In that case we keep the
    existing index and continue.
    """
    try:
        await col.create_index(keys, **kwargs)
    except OperationFailure as e:
        if getattr(e, "code", None) == 85:
            logger.warning(
                "Index conflict on %s keys=%s name=%s; keeping existing index",
                col.name,
                keys,
                kwargs.get("name"),
            )
            return
        raise


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # ---- Catalog ----
    await _ensure_index(db["devices"], [("device_id", 1)], unique=True, name="uniq_devices_device_id")
    await _ensure_index(
        db["devices"],
        [("make_key", 1), ("model_key", 1), ("storage_key", 1)],
        unique=True,
        name="uniq_devices_make_model_storage",
    )
    await _ensure_index(db["devices"], [("category", 1)], unique=False, name="idx_devices_category")

    await _ensure_index(db["device_aliases"], [("alias", 1)], unique=True, name="uniq_device_aliases_alias")
    await _ensure_index(db["device_aliases"], [("device_id", 1)], unique=False, name="idx_device_aliases_device")

    # ---- Pricing ----
    await _ensure_index(db["categories"], [("name", 1)], unique=True, name="uniq_categories_name")
    await _ensure_index(db["price_lists"], [("id", 1)], unique=True, name="uniq_price_lists_id")
    await _ensure_index(
        db["price_list_prices"],
        [("price_list_id", 1), ("device_id", 1)],
        unique=True,
        name="uniq_price_list_prices_list_device",
    )
    await _ensure_index(
        db["price_list_snapshots"],
        [("price_list_id", 1), ("created_at", -1)],
        unique=False,
        name="idx_price_list_snapshots_list_created",
    )

    # ---- Quotes / estimates ----
    await _ensure_index(db["quotes"], [("id", 1)], unique=True, name="uniq_quotes_id")
    await _ensure_index(db["quotes"], [("partner_id", 1), ("status", 1)], unique=False, name="idx_quotes_partner_status")
    await _ensure_index(db["bulk_quotes"], [("id", 1)], unique=True, name="uniq_bulk_quotes_id")
    await _ensure_index(
        db["bulk_quotes"], [("partner_id", 1), ("status", 1)], unique=False, name="idx_bulk_quotes_partner_status"
    )
    await _ensure_index(
        db["bulk_quote_lines"],
        [("bulk_quote_id", 1), ("line_no", 1)],
        unique=True,
        name="uniq_bulk_quote_lines_quote_line",
    )

    # ---- Shop ----
    await _ensure_index(db["orders"], [("id", 1)], unique=True, name="uniq_orders_id")
    await _ensure_index(db["inventory"], [("inventory_id", 1)], unique=True, name="uniq_inventory_inventory_id")
    await _ensure_index(db["inventory"], [("status", 1)], unique=False, name="idx_inventory_status")

    # ---- Partners / ledger ----
    await _ensure_index(db["partners"], [("id", 1)], unique=True, name="uniq_partners_id")
    await _ensure_index(db["partners"], [("code", 1)], unique=True, name="uniq_partners_code")
    await _ensure_index(
        db["commission_ledger"],
        [("partner_id", 1), ("source_kind", 1), ("source_id", 1)],
        unique=True,
        name="uniq_commission_ledger_partner_source",
    )
    await _ensure_index(
        db["commission_ledger"],
        [("partner_id", 1), ("status", 1)],
        unique=False,
        name="idx_commission_ledger_partner_status",
    )
    await _ensure_index(db["payouts"], [("id", 1)], unique=True, name="uniq_payouts_id")
    await _ensure_index(db["payouts"], [("partner_id", 1), ("created_at", -1)], unique=False, name="idx_payouts_partner")


@asynccontextmanager
async def mongo_lifespan(fastapi_app: FastAPI):
    client = AsyncIOMotorClient(
        config.mongo_uri,
        tz_aware=True,
        tzinfo=timezone.utc,
    )
    db = client[config.mongo_db]

    logger.info(
        "Mongo connected: uri=%s db=%s transactions=%s",
        config.mongo_uri,
        db.name,
        config.mongo_transactions,
    )

    # Store on app.state (avoid IDE/type checker complaining about FastAPI.state)
    state = getattr(fastapi_app, "state")
    setattr(state, "mongo_client", client)
    setattr(state, "db", db)

    await ensure_indexes(db)

    try:
        yield
    finally:
        client.close()


async def get_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db


async def run_in_transaction(
    db: AsyncIOMotorDatabase,
    fn: Callable[[Optional[AsyncIOMotorClientSession]], Awaitable[T]],
) -> T:
    """
    Run `fn(session)` as one atomic unit.

    With MONGO_TRANSACTIONS=false (standalone mongod, tests) `fn` receives
    session=None and each write stands on its own.
    """
    if not config.mongo_transactions:
        return await fn(None)

    async with await db.client.start_session() as session:
        async with session.start_transaction():
            return await fn(session)


async def next_sequence(
    db: AsyncIOMotorDatabase,
    name: str,
    *,
    count: int = 1,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> int:
    """
    Reserve `count` consecutive ids from the named counter.

    Returns the FIRST reserved id. `$inc` inside findAndModify is applied
    atomically by the server, so concurrent callers never receive overlapping
    ranges.
    """
    n = max(1, int(count))
    doc: Any = await db[COUNTERS_COL].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": n}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    last = int(doc["value"])
    return last - n + 1


async def write_in_chunks(
    db: AsyncIOMotorDatabase,
    items: Sequence[T],
    write_chunk: Callable[[Sequence[T], Optional[AsyncIOMotorClientSession]], Awaitable[int]],
    *,
    op: str,
    chunk_size: Optional[int] = None,
) -> int:
    """
    Apply `write_chunk` to consecutive slices of `items`, each slice in its own
    transaction. Returns the total reported by `write_chunk`.

    A failing chunk stops the run. Earlier chunks stay committed, so the
    DependencyError carries how many items were applied before the failure.
    """
    size = max(1, int(chunk_size or config.write_chunk_size))
    total = len(items)
    applied = 0
    written = 0

    for start in range(0, total, size):
        chunk = items[start:start + size]

        async def _run(session: Optional[AsyncIOMotorClientSession], _chunk=chunk) -> int:
            return await write_chunk(_chunk, session)

        try:
            written += int(await run_in_transaction(db, _run))
        except PyMongoError as exc:
            logger.error(
                "%s:chunk_failed applied=%s total=%s chunk_start=%s err=%s",
                op,
                applied,
                total,
                start,
                exc,
            )
            raise DependencyError(
                code=f"{op}_failed",
                message="Write failed part-way through; earlier chunks were applied",
                details={"applied": applied, "total": total},
            ) from exc

        applied += len(chunk)
        logger.debug("%s:chunk_done applied=%s total=%s", op, applied, total)

    return written
