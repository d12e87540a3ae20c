from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import config
from app.core.errors import register_exception_handlers
from app.core.logging import init_logging
from app.db.mongo import mongo_lifespan
from app.features.aliases.router import router as aliases_router
from app.features.catalog.caches import build_caches
from app.features.catalog.router import router as catalog_router
from app.features.estimates.router import router as estimates_router
from app.features.lifecycle.router import router as lifecycle_router
from app.features.matching.router import router as matching_router
from app.features.notifications.service import build_notifier
from app.features.orders.router import router as orders_router
from app.features.partners.router import router as partners_router
from app.features.pricing.router import router as pricing_router
from app.features.quotes.router import router as quotes_router


# Configure logging ON IMPORT so all subsequent module logs behave correctly.
init_logging(
    root_level="INFO",
    third_party_level="WARNING",
)


@asynccontextmanager
async def lifespan(application: FastAPI):
    async with mongo_lifespan(application):
        application.state.caches = build_caches(application.state.db)
        application.state.notifier = build_notifier()
        try:
            yield
        finally:
            await application.state.notifier.aclose()


app = FastAPI(title=config.app_name, lifespan=lifespan)
register_exception_handlers(app)

app.include_router(catalog_router)
app.include_router(aliases_router)
app.include_router(matching_router)
app.include_router(pricing_router)

app.include_router(quotes_router)
app.include_router(estimates_router)
app.include_router(lifecycle_router)

app.include_router(orders_router)
app.include_router(partners_router)


@app.get("/health")
async def health():
    return {"ok": True}
