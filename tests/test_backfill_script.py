"""Tests for the commission backfill script, imported as scripts.backfill_commissions."""

import sys
from datetime import datetime, timezone

import mongomock
import pytest

from scripts import backfill_commissions

PAID_AT = datetime(2026, 3, 14, tzinfo=timezone.utc)


@pytest.fixture
def store(monkeypatch):
    client = mongomock.MongoClient()
    monkeypatch.setattr(backfill_commissions, "MongoClient", lambda *args, **kwargs: client)
    db = client["tradein"]
    db["partners"].insert_one({"id": "p1", "status": "active", "modes": ["A"], "commission_percent": 5})
    db["quotes"].insert_many(
        [
            {"id": "q1", "partner_id": "p1", "partner_mode": "A", "status": "paid", "price": 400.0, "paid_at": PAID_AT},
            {"id": "q2", "partner_id": "p1", "partner_mode": "A", "status": "paid", "price": 200.0, "paid_at": PAID_AT},
            {"id": "q3", "partner_id": "p1", "partner_mode": "B", "status": "paid", "price": 900.0, "paid_at": PAID_AT},
        ]
    )
    db["commission_ledger"].insert_one(
        {"id": "e1", "partner_id": "p1", "source_kind": "quote", "source_id": "q2", "period": "2026-03", "device_count": 1}
    )
    return db


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["backfill_commissions", "--mongo-db", "tradein", *args])
    return backfill_commissions.main()


def test_only_unaccrued_mode_a_quotes_are_found(store):
    found = [(kind, doc["id"]) for kind, doc in backfill_commissions._iter_unaccrued(store, None)]
    assert found == [("quote", "q1")]


def test_dry_run_writes_nothing(store, monkeypatch, capsys):
    assert _run(monkeypatch) == 0
    assert "Would create 1 entries, total 20.0" in capsys.readouterr().out
    assert store["commission_ledger"].count_documents({}) == 1


def test_yes_accrues_in_the_month_paid(store, monkeypatch):
    assert _run(monkeypatch, "--yes") == 0

    entry = store["commission_ledger"].find_one({"source_id": "q1"}, {"_id": 0})
    assert entry["commission_amount"] == 20.0
    assert entry["period"] == "2026-03"
    assert entry["status"] == "pending"

    assert _run(monkeypatch, "--yes") == 0
    assert store["commission_ledger"].count_documents({"source_id": "q1"}) == 1
