"""Tests for delivery status transitions, timeline, tracking and listings."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.orm.attributes import set_committed_value

from config import settings
from db.database import utcnow_naive
from models.order import Order
from services import assignment_engine, availability, delivery_lifecycle
from services.errors import DeliveryNotFound, InvalidTransition, ValidationFailed

REQUESTER = uuid.UUID("0c7d8a52-55a4-4c57-8f0e-1d9ec2b5e7a1")


@pytest_asyncio.fixture
async def assigned(db, make_order, make_driver, make_vehicle):
    """One NORTH order assigned to a NORTH driver and vehicle."""
    order = await make_order(center="NORTH")
    driver = await make_driver(center="NORTH")
    vehicle = await make_vehicle(center="NORTH")
    return await assignment_engine.assign(db, order.id, driver.id, vehicle.id, REQUESTER)


# ── State machine ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_delivered_closes_order_and_frees_resources(db, assigned, reload):
    delivery_id, order_id = assigned.id, assigned.order_id
    driver_id, vehicle_id = assigned.driver_id, assigned.vehicle_id

    await delivery_lifecycle.advance_status(db, delivery_id, "IN_TRANSIT")
    assert (await reload(Order, order_id)).status == "IN_TRANSIT"

    delivery = await delivery_lifecycle.advance_status(db, delivery_id, "DELIVERED")
    assert delivery.status == "DELIVERED"
    assert delivery.completed_at is not None

    order = await reload(Order, order_id)
    assert order.status == "DELIVERED"
    assert order.delivered_at is not None

    assert driver_id in [d.id for d in await availability.available_drivers(db, "NORTH")]
    assert vehicle_id in [v.id for v in await availability.available_vehicles(db, "NORTH")]


@pytest.mark.asyncio
async def test_picked_up_does_not_touch_order(db, assigned, reload):
    delivery = await delivery_lifecycle.advance_status(db, assigned.id, "PICKED_UP")
    assert delivery.status == "PICKED_UP"
    assert (await reload(Order, assigned.order_id)).status == "ASSIGNED"


@pytest.mark.asyncio
async def test_failed_propagates_to_order(db, assigned, reload):
    await delivery_lifecycle.advance_status(db, assigned.id, "FAILED", note="Customer unreachable")
    assert (await reload(Order, assigned.order_id)).status == "FAILED"


@pytest.mark.asyncio
@pytest.mark.parametrize("alias", ["ON_THE_WAY", "OnTheWay", "InTransit", "in transit"])
async def test_on_the_way_alias_stored_as_in_transit(db, assigned, alias):
    delivery = await delivery_lifecycle.advance_status(db, assigned.id, alias)
    assert delivery.status == "IN_TRANSIT"
    assert delivery.timeline[-1].status == "IN_TRANSIT"


@pytest.mark.asyncio
async def test_unknown_status_is_validation_error(db, assigned):
    with pytest.raises(ValidationFailed):
        await delivery_lifecycle.advance_status(db, assigned.id, "TELEPORTED")


@pytest.mark.asyncio
async def test_cannot_skip_in_transit(db, assigned):
    with pytest.raises(InvalidTransition) as exc:
        await delivery_lifecycle.advance_status(db, assigned.id, "DELIVERED")
    assert exc.value.current_status == "ASSIGNED"
    assert exc.value.requested_status == "DELIVERED"


@pytest.mark.asyncio
async def test_terminal_delivery_rejects_changes_and_keeps_timeline(db, assigned):
    delivery_id = assigned.id
    await delivery_lifecycle.advance_status(db, delivery_id, "IN_TRANSIT")
    await delivery_lifecycle.advance_status(db, delivery_id, "DELIVERED")
    before = [(e.seq, e.status) for e in await delivery_lifecycle.get_timeline(db, delivery_id)]

    with pytest.raises(InvalidTransition):
        await delivery_lifecycle.advance_status(db, delivery_id, "PICKED_UP")
    with pytest.raises(InvalidTransition):
        await delivery_lifecycle.advance_status(db, delivery_id, "DELIVERED")

    after = [(e.seq, e.status) for e in await delivery_lifecycle.get_timeline(db, delivery_id)]
    assert after == before == [(1, "ASSIGNED"), (2, "IN_TRANSIT"), (3, "DELIVERED")]


@pytest.mark.asyncio
async def test_timeline_is_append_only_and_ordered(db, assigned):
    await delivery_lifecycle.advance_status(db, assigned.id, "PICKED_UP", note="Loaded", location="Dock 4")
    await delivery_lifecycle.advance_status(db, assigned.id, "IN_TRANSIT")

    timeline = await delivery_lifecycle.get_timeline(db, assigned.id)
    assert [e.seq for e in timeline] == [1, 2, 3]
    assert [e.status for e in timeline] == ["ASSIGNED", "PICKED_UP", "IN_TRANSIT"]
    assert timeline[1].note == "Loaded"
    assert timeline[1].location == "Dock 4"
    stamps = [e.created_at for e in timeline]
    assert stamps == sorted(stamps)


@pytest.mark.asyncio
async def test_unknown_delivery(db):
    with pytest.raises(DeliveryNotFound):
        await delivery_lifecycle.advance_status(db, uuid.uuid4(), "IN_TRANSIT")
    with pytest.raises(DeliveryNotFound):
        await delivery_lifecycle.get_timeline(db, uuid.uuid4())


# ── Tracking ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_position_last_write_wins(db, assigned):
    await delivery_lifecycle.record_position(db, assigned.id, 52.52, 13.40, speed=12.5, heading=90)
    await delivery_lifecycle.record_position(db, assigned.id, 52.53, 13.41)

    delivery = await delivery_lifecycle.get_delivery(db, assigned.id)
    pos = delivery.last_known_position
    assert pos["lat"] == 52.53
    assert pos["lng"] == 13.41
    assert pos["speed"] is None
    assert pos["timestamp"] is not None

    history = await delivery_lifecycle.list_positions(db, assigned.id)
    assert len(history) == 2
    assert history[0].lat == 52.53


@pytest.mark.asyncio
async def test_position_does_not_touch_timeline_by_default(db, assigned):
    await delivery_lifecycle.record_position(db, assigned.id, 10.0, 10.0)
    assert len(await delivery_lifecycle.get_timeline(db, assigned.id)) == 1


@pytest.mark.asyncio
async def test_position_sampling_appends_at_most_once_per_interval(db, assigned, monkeypatch):
    monkeypatch.setattr(settings, "TIMELINE_POSITION_SAMPLE_SECONDS", 300)

    await delivery_lifecycle.record_position(db, assigned.id, 10.0, 20.0)
    await delivery_lifecycle.record_position(db, assigned.id, 10.1, 20.1)

    timeline = await delivery_lifecycle.get_timeline(db, assigned.id)
    assert [e.status for e in timeline] == ["ASSIGNED", "ASSIGNED"]
    assert timeline[-1].location == "10.000000,20.000000"


def test_sample_due_compares_aware_and_naive_timestamps():
    now = datetime(2024, 5, 1, 12, 0, 0)
    recent = datetime(2024, 5, 1, 13, 58, tzinfo=timezone(timedelta(hours=2)))
    stale = datetime(2024, 5, 1, 11, 50, tzinfo=timezone.utc)

    assert delivery_lifecycle._sample_due(recent, now, 300) is False
    assert delivery_lifecycle._sample_due(stale, now, 300) is True
    assert delivery_lifecycle._sample_due(None, now, 300) is True
    assert delivery_lifecycle._sample_due(None, now, 0) is False


@pytest.mark.asyncio
async def test_position_sampling_with_timezone_aware_store_values(db, assigned, monkeypatch):
    """asyncpg hands timestamptz back aware; sampling must still work."""
    monkeypatch.setattr(settings, "TIMELINE_POSITION_SAMPLE_SECONDS", 300)
    real_get_delivery = delivery_lifecycle.get_delivery

    async def _aware_get_delivery(db, delivery_id, for_update=False):
        delivery = await real_get_delivery(db, delivery_id, for_update=for_update)
        if delivery.last_sampled_at is not None:
            set_committed_value(delivery, "last_sampled_at", delivery.last_sampled_at.replace(tzinfo=timezone.utc))
        return delivery

    monkeypatch.setattr(delivery_lifecycle, "get_delivery", _aware_get_delivery)

    await delivery_lifecycle.record_position(db, assigned.id, 10.0, 20.0)
    await delivery_lifecycle.record_position(db, assigned.id, 10.1, 20.1)

    assert len(await delivery_lifecycle.get_timeline(db, assigned.id)) == 2
    assert len(await delivery_lifecycle.list_positions(db, assigned.id)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("lat,lng,speed,heading", [
    (91.0, 0.0, None, None),
    (0.0, -181.0, None, None),
    (0.0, 0.0, -1.0, None),
    (0.0, 0.0, None, 360.0),
    (float("nan"), 0.0, None, None),
])
async def test_invalid_position_rejected(db, assigned, lat, lng, speed, heading):
    with pytest.raises(ValidationFailed):
        await delivery_lifecycle.record_position(db, assigned.id, lat, lng, speed=speed, heading=heading)


@pytest.mark.asyncio
async def test_position_rejected_after_delivery_closed(db, assigned):
    delivery_id = assigned.id
    await delivery_lifecycle.advance_status(db, delivery_id, "FAILED")

    with pytest.raises(InvalidTransition):
        await delivery_lifecycle.record_position(db, delivery_id, 1.0, 1.0)
    assert await delivery_lifecycle.list_positions(db, delivery_id) == []


# ── Listings ───────────────────────────────────────────────

async def _assign_many(db, make_order, make_driver, make_vehicle, count, center="NORTH"):
    deliveries = []
    for i in range(count):
        order = await make_order(center=center)
        driver = await make_driver(center=center, full_name=f"Courier {center.title()} {i}")
        vehicle = await make_vehicle(center=center)
        deliveries.append(await assignment_engine.assign(db, order.id, driver.id, vehicle.id, REQUESTER))
    return deliveries


@pytest.mark.asyncio
async def test_list_deliveries_paginates(db, make_order, make_driver, make_vehicle):
    await _assign_many(db, make_order, make_driver, make_vehicle, 3)

    first = await delivery_lifecycle.list_deliveries(db, page=1, limit=2)
    second = await delivery_lifecycle.list_deliveries(db, page=2, limit=2)

    assert first["total"] == 3
    assert first["pages"] == 2
    assert len(first["data"]) == 2
    assert len(second["data"]) == 1
    ids = {d.id for d in first["data"]} | {d.id for d in second["data"]}
    assert len(ids) == 3


@pytest.mark.asyncio
async def test_list_deliveries_filters(db, make_order, make_driver, make_vehicle):
    north = await _assign_many(db, make_order, make_driver, make_vehicle, 2, center="NORTH")
    await _assign_many(db, make_order, make_driver, make_vehicle, 1, center="SOUTH")
    await delivery_lifecycle.advance_status(db, north[0].id, "ON_THE_WAY")

    by_center = await delivery_lifecycle.list_deliveries(db, center="North Center")
    assert by_center["total"] == 2

    by_status = await delivery_lifecycle.list_deliveries(db, status="OnTheWay")
    assert [d.id for d in by_status["data"]] == [north[0].id]

    by_search = await delivery_lifecycle.list_deliveries(db, search="courier south")
    assert by_search["total"] == 1

    everything = await delivery_lifecycle.list_deliveries(db, center="All", status="")
    assert everything["total"] == 3


@pytest.mark.asyncio
async def test_list_deliveries_end_date_is_inclusive(db, make_order, make_driver, make_vehicle):
    await _assign_many(db, make_order, make_driver, make_vehicle, 1)
    today = utcnow_naive().date()

    same_day = await delivery_lifecycle.list_deliveries(db, start_date=today, end_date=today)
    assert same_day["total"] == 1

    yesterday = await delivery_lifecycle.list_deliveries(db, end_date=today - timedelta(days=1))
    assert yesterday["total"] == 0


@pytest.mark.asyncio
async def test_list_deliveries_rejects_bad_page(db):
    with pytest.raises(ValidationFailed):
        await delivery_lifecycle.list_deliveries(db, page=0)


@pytest.mark.asyncio
async def test_delivery_stats(db, make_order, make_driver, make_vehicle):
    first, second = await _assign_many(db, make_order, make_driver, make_vehicle, 2)
    await delivery_lifecycle.advance_status(db, first.id, "IN_TRANSIT")
    await delivery_lifecycle.advance_status(db, second.id, "FAILED")

    stats = await delivery_lifecycle.delivery_stats(db)
    assert stats["total"] == 2
    assert stats["today"] == 2
    assert stats["in_transit"] == 1
    assert stats["failed"] == 1
    assert stats["delivered"] == 0
    assert stats["drivers"] == 2
    assert stats["vehicles"] == 2
