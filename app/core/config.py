# app/core/config.py
"""
This file holds *global* app settings (things that are not per-request).

Think of it like the "settings panel" for the backend:
- MongoDB connection details (and whether transactions are available)
- Chunk size for multi-document writes
- Cache lifetimes for the device / price caches
- Matcher confidence thresholds
- Notification (email) provider settings

IMPORTANT:
MongoDB multi-document transactions need a replica set. A plain local
`mongod` rejects them, so MONGO_TRANSACTIONS lets dev boxes opt out.
"""
from __future__ import annotations

import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Loads environment variables from a local ".env" file (if present).
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class AppConfig(BaseModel):
    """
    AppConfig is a structured container for environment-based settings.

    Environment variables override the defaults below.
    """

    # -----------------------------
    # General app settings
    # -----------------------------
    app_name: str = "Trade-in Valuation Engine"
    environment: str = os.getenv("APP_ENV", "dev")  # dev / staging / prod
    debug: bool = _env_bool("DEBUG", "true")

    # -----------------------------
    # MongoDB settings
    # -----------------------------
    mongo_uri: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    mongo_db: str = os.getenv("MONGO_DB", "tradein")

    # Run chunked writes / order cancellation inside a transaction.
    mongo_transactions: bool = _env_bool("MONGO_TRANSACTIONS", "true")

    # Max documents written per atomic chunk.
    write_chunk_size: int = int(os.getenv("WRITE_CHUNK_SIZE", "200"))

    # -----------------------------
    # Caches
    # -----------------------------
    device_cache_ttl_seconds: float = float(os.getenv("DEVICE_CACHE_TTL_SECONDS", "300"))
    price_cache_ttl_seconds: float = float(os.getenv("PRICE_CACHE_TTL_SECONDS", "300"))

    # -----------------------------
    # Matching
    # -----------------------------
    # Fraction of query tokens that must appear in a candidate.
    # These are business tuning knobs; calibrate against real manifests.
    match_medium_threshold: float = float(os.getenv("MATCH_MEDIUM_THRESHOLD", "0.8"))
    match_low_threshold: float = float(os.getenv("MATCH_LOW_THRESHOLD", "0.6"))

    # -----------------------------
    # Pricing defaults
    # -----------------------------
    default_category: str = os.getenv("DEFAULT_CATEGORY", "Phone")
    default_currency: str = os.getenv("DEFAULT_CURRENCY", "NZD")
    default_assumed_grade: str = os.getenv("DEFAULT_ASSUMED_GRADE", "C")

    # -----------------------------
    # Notifications (Resend HTTP API)
    # -----------------------------
    # No key => notifications are skipped (logged).
    resend_api_key: str | None = os.getenv("RESEND_API_KEY") or None
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    email_from: str = os.getenv("EMAIL_FROM", "noreply@example.com")
    notify_timeout_seconds: float = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))


# Global singleton used throughout the app
config = AppConfig()
