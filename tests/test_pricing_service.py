"""Tests for price lists, price resolution and bulk adjustments."""

import pytest
from pymongo.errors import PyMongoError

from app.core.config import config
from app.core.errors import ConflictError, DependencyError, NotFoundError
from app.features.catalog.schemas import DeviceCreate
from app.features.catalog.service import create_device
from app.features.pricing.repo import PricesRepo
from app.features.pricing.schemas import (
    BulkAdjustRequest,
    GradePrices,
    PriceListCreate,
    PriceRow,
    PricingSettingsUpdate,
)
from app.features.pricing.service import (
    activate_price_list,
    bulk_adjust,
    create_price_list,
    delete_price_list,
    get_price_list_detail,
    get_settings,
    list_snapshots,
    price_for,
    replace_prices,
    set_device_price,
    update_settings,
)


@pytest.mark.asyncio
async def test_ingest_creates_devices_and_activates(price_list):
    assert price_list.active is True
    assert price_list.device_count == 2
    assert price_list.category == "Phone"


@pytest.mark.asyncio
async def test_ingest_reuses_existing_devices(db, caches, price_list):
    result = await create_price_list(
        db,
        caches,
        PriceListCreate(name="Draft", rows=[PriceRow(make="apple", model="IPHONE 13", storage="128 GB", A=410)]),
    )
    assert result.devices_created == 0
    assert result.price_list.active is False

    detail = await get_price_list_detail(db, caches, result.price_list.id)
    assert [p.device_id for p in detail.prices] == [2]


@pytest.mark.asyncio
async def test_price_for_derives_missing_grades(db, caches, price_list):
    quote = await price_for(db, caches, device_id=1, grade="b")
    assert quote.grade == "B"
    assert quote.price == 350.0
    assert quote.price_list_id == price_list.id

    # Explicit B wins over the ratio.
    assert (await price_for(db, caches, device_id=2, grade="B")).price == 300.0


@pytest.mark.asyncio
async def test_price_for_errors(db, caches, price_list):
    with pytest.raises(NotFoundError) as exc:
        await price_for(db, caches, device_id=3, grade="A")
    assert exc.value.code == "price_not_found"

    with pytest.raises(NotFoundError) as exc:
        await price_for(db, caches, device_id=99, grade="A")
    assert exc.value.code == "device_not_found"

    tablet = await create_device(db, caches, DeviceCreate(make="Apple", model="iPad Air", storage="64GB", category="Tablet"))
    with pytest.raises(NotFoundError) as exc:
        await price_for(db, caches, device_id=tablet.device_id, grade="A")
    assert exc.value.code == "no_active_price_list"


@pytest.mark.asyncio
async def test_duplicate_device_is_rejected(db, caches, price_list):
    with pytest.raises(ConflictError) as exc:
        await create_device(db, caches, DeviceCreate(make="Google", model="pixel 7", storage="128gb"))
    assert exc.value.code == "device_exists"


@pytest.mark.asyncio
async def test_bulk_adjust_percent_snapshots_first(db, caches, price_list):
    result = await bulk_adjust(db, caches, price_list.id, BulkAdjustRequest(operation="percent", value=10))
    assert result.updated == 2
    assert result.requested == 2

    assert (await price_for(db, caches, device_id=1, grade="A")).price == 550.0
    assert (await price_for(db, caches, device_id=2, grade="B")).price == 330.0

    snaps = await list_snapshots(db, price_list.id)
    assert [s.reason for s in snaps] == ["bulk_adjust:percent"]
    assert snaps[0].device_count == 2


@pytest.mark.asyncio
async def test_bulk_adjust_subset_of_devices(db, caches, price_list):
    result = await bulk_adjust(
        db, caches, price_list.id, BulkAdjustRequest(operation="dollar", value=-50, device_ids=[2, 3])
    )
    assert result.requested == 2
    assert result.updated == 1
    assert (await price_for(db, caches, device_id=1, grade="A")).price == 500.0
    assert (await price_for(db, caches, device_id=2, grade="A")).price == 350.0


@pytest.mark.asyncio
async def test_bulk_adjust_failed_chunk_reports_applied_count(db, caches, price_list, monkeypatch):
    calls = {"n": 0}
    original = PricesRepo.upsert_many

    async def flaky(self, price_list_id, rows, session=None):
        calls["n"] += 1
        if calls["n"] == 2:
            raise PyMongoError("write conflict")
        return await original(self, price_list_id, rows, session=session)

    monkeypatch.setattr(PricesRepo, "upsert_many", flaky)
    monkeypatch.setattr(config, "write_chunk_size", 1)

    with pytest.raises(DependencyError) as exc:
        await bulk_adjust(db, caches, price_list.id, BulkAdjustRequest(operation="percent", value=10))
    assert exc.value.code == "bulk_adjust_failed"
    assert exc.value.details == {"applied": 1, "total": 2}

    # Device 1 was in the committed chunk, device 2 was not.
    assert (await price_for(db, caches, device_id=1, grade="A")).price == 550.0
    assert (await price_for(db, caches, device_id=2, grade="A")).price == 400.0
    snaps = await list_snapshots(db, price_list.id)
    assert [s.reason for s in snaps] == ["bulk_adjust:percent"]


@pytest.mark.asyncio
async def test_set_ratios_uses_category_settings(db, caches, price_list):
    settings = await update_settings(db, caches, "Phone", PricingSettingsUpdate(grade_ratios={"B": 80}))
    assert settings.grade_ratios["B"] == 80.0
    assert settings.grade_ratios["C"] == 40.0
    assert settings.active_price_list_id == price_list.id

    await bulk_adjust(db, caches, price_list.id, BulkAdjustRequest(operation="set_ratios"))
    # Explicit B=300 replaced by 80% of A.
    assert (await price_for(db, caches, device_id=2, grade="B")).price == 320.0


@pytest.mark.asyncio
async def test_settings_defaults_for_unknown_category(caches):
    settings = await get_settings(caches, "Laptop")
    assert settings.rounding == 5.0
    assert settings.grade_ratios == {"B": 70.0, "C": 40.0, "D": 20.0, "E": 10.0}
    assert settings.active_price_list_id is None


@pytest.mark.asyncio
async def test_replace_prices_drops_missing_devices(db, caches, price_list):
    result = await replace_prices(db, caches, price_list.id, [PriceRow(device_id=1, A=520)])
    assert result.rows_written == 1
    assert result.price_list.device_count == 1

    with pytest.raises(NotFoundError):
        await price_for(db, caches, device_id=2, grade="A")

    snaps = await list_snapshots(db, price_list.id)
    assert snaps[0].reason == "replace"
    assert snaps[0].device_count == 2


@pytest.mark.asyncio
async def test_set_device_price_merges_with_existing(db, caches, price_list):
    out = await set_device_price(db, caches, price_list.id, 2, GradePrices(C=150))
    assert out.prices == {"A": 400.0, "B": 300.0, "C": 150.0, "D": 80.0, "E": 40.0}
    assert [s.reason for s in await list_snapshots(db, price_list.id)] == ["device_edit"]


@pytest.mark.asyncio
async def test_active_list_cannot_be_deleted(db, caches, price_list):
    with pytest.raises(ConflictError) as exc:
        await delete_price_list(db, caches, price_list.id)
    assert exc.value.code == "price_list_active"

    other = await create_price_list(db, caches, PriceListCreate(name="Next", rows=[PriceRow(device_id=1, A=510)]))
    await activate_price_list(db, caches, other.price_list.id)
    await delete_price_list(db, caches, price_list.id)

    assert (await price_for(db, caches, device_id=1, grade="A")).price == 510.0
