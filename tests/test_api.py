"""HTTP-level tests: routing, status codes and the error envelope."""

import pytest


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.asyncio
async def test_create_and_get_device(client, price_list):
    r = await client.post("/devices", json={"make": "Samsung", "model": "Galaxy S23", "storage": "256GB"})
    assert r.status_code == 201
    device = r.json()
    assert device["device_id"] == 4
    assert device["name"] == "Samsung Galaxy S23 256GB"

    r = await client.get(f"/devices/{device['device_id']}")
    assert r.status_code == 200

    r = await client.post("/devices", json={"make": "samsung", "model": "galaxy s23", "storage": "256 GB"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "device_exists"


@pytest.mark.asyncio
async def test_match_preview(client, price_list):
    r = await client.post("/match", json={"raw_text": "iphone 13 pro 256gb x2"})
    assert r.status_code == 200
    body = r.json()
    assert body["device_id"] == 1
    assert body["quantity"] == 2


@pytest.mark.asyncio
async def test_price_lookup(client, price_list):
    r = await client.get("/prices", params={"device_id": 1, "grade": "c"})
    assert r.status_code == 200
    assert r.json()["price"] == 200.0

    r = await client.get("/prices", params={"device_id": 3, "grade": "A"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "price_not_found"


@pytest.mark.asyncio
async def test_request_validation_uses_error_envelope(client):
    r = await client.post("/devices", json={"make": "Apple"})
    assert r.status_code == 422
    body = r.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["details"]["errors"]


@pytest.mark.asyncio
async def test_not_found_carries_request_id(client):
    r = await client.get("/quotes/nope", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 404
    body = r.json()
    assert body["error"]["code"] == "quote_not_found"
    assert body["request_id"] == "req-42"
    assert r.headers["x-request-id"] == "req-42"


@pytest.mark.asyncio
async def test_estimate_submit_and_export(client, price_list):
    r = await client.post(
        "/estimates/csv",
        json={
            "contact_name": "Ana",
            "contact_email": "ana@example.com",
            "csv_text": "Device,Qty\nApple iPhone 13 128GB,2\nmystery gadget,1\n",
        },
    )
    assert r.status_code == 201
    est = r.json()
    assert est["total_devices"] == 3
    assert est["matched_count"] == 1
    assert est["unmatched_count"] == 1

    r = await client.get(f"/estimates/{est['id']}/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "mystery gadget" in r.text

    r = await client.post("/estimates/csv", json={"contact_name": "Ana", "contact_email": "ana@example.com", "csv_text": ""})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "manifest"


@pytest.mark.asyncio
async def test_quote_status_over_http(client, price_list):
    r = await client.post(
        "/quotes",
        json={"device_id": 2, "grade": "B", "customer_name": "Sam", "customer_email": "sam@example.com"},
    )
    assert r.status_code == 201
    quote = r.json()
    assert quote["price"] == 300.0

    r = await client.patch(f"/quotes/{quote['id']}/status", json={"status": "paid"})
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "invalid_transition"
    assert err["details"]["current"] == "quoted"

    r = await client.patch(f"/quotes/{quote['id']}/status", json={"status": "Accepted"})
    assert r.status_code == 200
    assert r.json()["status"] == "accepted"
    assert r.json()["previous_status"] == "quoted"

    r = await client.patch(f"/quotes/{quote['id']}/status", json={"status": "shipped"})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "tracking_carrier"

    r = await client.patch(f"/quotes/{quote['id']}/status", json={"status": "teleported"})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "status"


@pytest.mark.asyncio
async def test_partner_headers_select_mode_b_rate(client, price_list):
    r = await client.post(
        "/partners",
        json={"code": "shopb", "name": "Shop B", "email": "b@example.com", "modes": ["B"], "rate_discount": 20},
    )
    assert r.status_code == 201
    partner = r.json()
    assert partner["code"] == "SHOPB"

    r = await client.post(
        "/quotes",
        json={"device_id": 1, "grade": "A", "customer_name": "Shop B", "customer_email": "b@example.com"},
        headers={"X-Principal-Id": partner["id"], "X-Principal-Role": "partner", "X-Principal-Modes": "B"},
    )
    assert r.status_code == 201
    assert r.json()["price"] == 400.0
    assert r.json()["partner_mode"] == "B"

    r = await client.get(f"/partners/{partner['id']}/balance")
    assert r.json() == {"partner_id": partner["id"], "pending_total": 0.0, "pending_count": 0}


@pytest.mark.asyncio
async def test_driver_failure_maps_to_503(client, monkeypatch):
    from pymongo.errors import ServerSelectionTimeoutError

    from app.features.quotes.repo import QuotesRepo

    async def down(self, quote_id):
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(QuotesRepo, "get", down)

    r = await client.get("/quotes/abc")
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "store_unavailable"
