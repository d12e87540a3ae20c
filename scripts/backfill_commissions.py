#!/usr/bin/env python
"""Create missing commission ledger entries for paid mode-A quotes.

A quote or bulk quote that reached "paid" while the commission side effect
failed (store outage, partner briefly inactive, ...) has no ledger entry.
This finds those and accrues them, using the same arithmetic as the live
path. The entry's period is the month the quote was paid.

Run it as a module from the repository root so the `app` package imports
without an install:

  python -m scripts.backfill_commissions            # dry run, prints the plan
  python -m scripts.backfill_commissions --yes      # writes the entries

Environment variables:
  MONGO_URI (default: mongodb://localhost:27017)
  MONGO_DB  (default: tradein)
"""

from __future__ import annotations

import argparse
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
from uuid import uuid4

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from app.features.partners.commission import compute_commission, current_period, source_totals
from app.features.pricing.rounding import round2

SOURCES: list[tuple[str, str]] = [
    ("quote", "quotes"),
    ("bulk_quote", "bulk_quotes"),
]


def _iter_unaccrued(db: Database, partner_id: Optional[str]) -> Iterator[tuple[str, Dict[str, Any]]]:
    q: Dict[str, Any] = {"status": "paid", "partner_mode": "A", "partner_id": {"$ne": None}}
    if partner_id:
        q["partner_id"] = partner_id

    ledger = db["commission_ledger"]
    for kind, col in SOURCES:
        for doc in db[col].find(q, {"_id": 0}):
            exists = ledger.count_documents(
                {"partner_id": doc["partner_id"], "source_kind": kind, "source_id": doc["id"]},
                limit=1,
            )
            if not exists:
                yield kind, doc


def _period_volume(db: Database, partner_id: str, period: str) -> int:
    total = 0
    for e in db["commission_ledger"].find({"partner_id": partner_id, "period": period}, {"device_count": 1}):
        total += int(e.get("device_count") or 0)
    return total


def main() -> int:
    p = argparse.ArgumentParser(description="Accrue commission for paid mode-A quotes that have no ledger entry")
    p.add_argument(
        "--mongo-uri",
        default=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        help="Mongo connection URI (default from MONGO_URI)",
    )
    p.add_argument(
        "--mongo-db",
        default=os.getenv("MONGO_DB", "tradein"),
        help="Mongo database name (default from MONGO_DB)",
    )
    p.add_argument("--partner-id", default=None, help="Only backfill this partner")
    p.add_argument("--yes", action="store_true", help="Write entries (default is a dry run)")

    args = p.parse_args()

    client = MongoClient(args.mongo_uri, tz_aware=True, tzinfo=timezone.utc)
    db = client[args.mongo_db]
    partners: Dict[str, Optional[Dict[str, Any]]] = {}

    print(f"Mongo URI: {args.mongo_uri}")
    print(f"Mongo DB : {args.mongo_db}")
    print(f"Mode     : {'WRITE' if args.yes else 'DRY RUN'}\n")

    created = 0
    skipped = 0
    total_amount = 0.0

    for kind, doc in _iter_unaccrued(db, args.partner_id):
        pid = str(doc["partner_id"])
        if pid not in partners:
            partners[pid] = db["partners"].find_one({"id": pid}, {"_id": 0})
        partner = partners[pid]

        if not partner or partner.get("status") != "active" or "A" not in (partner.get("modes") or []):
            print(f"  - skip {kind} {doc['id']}: partner {pid} missing, inactive or not mode A")
            skipped += 1
            continue

        quote_total, device_count = source_totals(kind, doc)
        paid_at = doc.get("paid_at")
        period = current_period(paid_at if isinstance(paid_at, datetime) else None)
        volume = _period_volume(db, pid, period) + device_count
        amount = compute_commission(partner, quote_total=quote_total, device_count=device_count, monthly_volume=volume)

        if amount <= 0:
            print(f"  - skip {kind} {doc['id']}: commission {amount}")
            skipped += 1
            continue

        print(f"  - {kind} {doc['id']} partner={pid} period={period} devices={device_count} amount={amount}")
        total_amount += amount

        if not args.yes:
            created += 1
            continue

        try:
            db["commission_ledger"].insert_one(
                {
                    "id": str(uuid4()),
                    "partner_id": pid,
                    "source_kind": kind,
                    "source_id": doc["id"],
                    "device_count": device_count,
                    "quote_total": round2(quote_total),
                    "commission_amount": amount,
                    "period": period,
                    "status": "pending",
                    "created_at": datetime.now(timezone.utc),
                    "paid_at": None,
                    "payout_id": None,
                }
            )
        except DuplicateKeyError:
            # Accrued by the live path since the scan.
            skipped += 1
            continue
        created += 1

    verb = "Created" if args.yes else "Would create"
    print(f"\n{verb} {created} entries, total {round2(total_amount)}; skipped {skipped}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
