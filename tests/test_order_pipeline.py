"""Tests for order transitions and the dispatch queue."""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from models.notification import Notification
from models.order import Order, OrderEvent
from schemas import OrderCreate
from services import assignment_engine, order_pipeline
from services.errors import InvalidTransition, OrderNotFound


def test_transition_table():
    assert order_pipeline.is_valid_order_transition("PENDING", "READY_FOR_DISPATCH")
    assert order_pipeline.is_valid_order_transition("READY_FOR_DISPATCH", "ASSIGNED")
    assert order_pipeline.is_valid_order_transition("ASSIGNED", "IN_TRANSIT")
    assert order_pipeline.is_valid_order_transition("IN_TRANSIT", "DELIVERED")
    assert not order_pipeline.is_valid_order_transition("PENDING", "ASSIGNED")
    assert not order_pipeline.is_valid_order_transition("ASSIGNED", "CANCELLED")
    assert not order_pipeline.is_valid_order_transition("DELIVERED", "FAILED")


def test_terminal_statuses():
    assert order_pipeline.TERMINAL_ORDER_STATUSES == {"DELIVERED", "FAILED", "CANCELLED"}


def test_order_code_format():
    code = order_pipeline._generate_order_code()
    assert code.startswith("ORD-")
    assert len(code) == 15  # ORD-YYMMDD-XXXX


@pytest.mark.asyncio
async def test_create_order_is_pending_with_total(db):
    data = OrderCreate(
        customer_name="Acme Ltd",
        delivery_address="1 Harbour Road",
        items=[
            {"product_ref": "SKU-1", "quantity": 3, "unit_price": 2.5},
            {"product_ref": "SKU-2", "quantity": 1, "unit_price": 10},
        ],
        priority="high",
        delivery_center="north center",
    )
    order = await order_pipeline.create_order(db, data)

    assert order.status == "PENDING"
    assert order.delivery_center == "NORTH"
    assert order.priority == "HIGH"
    assert float(order.total_amount) == 17.5
    assert len(order.items) == 2
    assert [e.to_status for e in order.events] == ["PENDING"]


@pytest.mark.asyncio
async def test_mark_ready_notifies_logistics(db, make_order):
    order = await make_order(status="PENDING", center="EAST")
    actor = uuid.uuid4()

    ready = await order_pipeline.mark_ready_for_dispatch(db, order.id, actor_id=actor)

    assert ready.status == "READY_FOR_DISPATCH"
    assert ready.ready_by == actor
    assert ready.ready_at is not None
    notes = (await db.execute(
        select(Notification).where(Notification.audience == "LOGISTICS")
    )).scalars().all()
    assert len(notes) == 1
    assert notes[0].center == "EAST"
    assert notes[0].related_id == order.id


@pytest.mark.asyncio
async def test_mark_ready_twice_is_invalid(db, make_order):
    order = await make_order(status="READY_FOR_DISPATCH")
    with pytest.raises(InvalidTransition):
        await order_pipeline.mark_ready_for_dispatch(db, order.id)


@pytest.mark.asyncio
async def test_cancel_order(db, make_order):
    order = await make_order(status="PENDING")
    cancelled = await order_pipeline.cancel_order(db, order.id)
    assert cancelled.status == "CANCELLED"
    assert cancelled.cancelled_at is not None

    events = (await db.execute(
        select(OrderEvent).where(OrderEvent.order_id == order.id)
    )).scalars().all()
    assert [(e.from_status, e.to_status) for e in events] == [("PENDING", "CANCELLED")]


@pytest.mark.asyncio
async def test_cannot_cancel_assigned_order(db, make_order):
    order = await make_order(status="ASSIGNED")
    with pytest.raises(InvalidTransition):
        await order_pipeline.cancel_order(db, order.id)


@pytest.mark.asyncio
async def test_fail_unassigned_ready_order(db, make_order):
    order = await make_order(status="READY_FOR_DISPATCH")
    failed = await order_pipeline.fail_unassigned_order(db, order.id, "Address unreachable")
    assert failed.status == "FAILED"

    events = (await db.execute(
        select(OrderEvent).where(OrderEvent.order_id == order.id)
    )).scalars().all()
    assert [(e.from_status, e.to_status) for e in events] == [("READY_FOR_DISPATCH", "FAILED")]
    assert events[0].metadata_json == {"reason": "Address unreachable"}
    assert await order_pipeline.list_ready_for_dispatch(db, "NORTH") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["PENDING", "ASSIGNED", "DELIVERED"])
async def test_only_ready_orders_fail_directly(db, make_order, reload, status):
    order = await make_order(status=status)
    order_id = order.id
    with pytest.raises(InvalidTransition):
        await order_pipeline.fail_unassigned_order(db, order_id, "No capacity")
    assert (await reload(Order, order_id)).status == status


@pytest.mark.asyncio
async def test_unknown_order(db):
    with pytest.raises(OrderNotFound):
        await order_pipeline.get_order(db, uuid.uuid4())


@pytest.mark.asyncio
async def test_order_center_is_immutable(db, make_order):
    order = await make_order(center="NORTH")
    with pytest.raises(ValueError):
        order.delivery_center = "SOUTH"


# ── Dispatch queue ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_queue_high_priority_first_then_oldest(db, make_order):
    now = datetime(2026, 3, 10, 12, 0)
    old_normal = await make_order(priority="NORMAL", order_date=now - timedelta(days=2))
    new_high = await make_order(priority="HIGH", order_date=now)
    old_high = await make_order(priority="HIGH", order_date=now - timedelta(days=1))
    new_normal = await make_order(priority="NORMAL", order_date=now - timedelta(hours=1))

    queue = await order_pipeline.list_ready_for_dispatch(db)
    assert [o.id for o in queue] == [old_high.id, new_high.id, old_normal.id, new_normal.id]


@pytest.mark.asyncio
async def test_queue_only_ready_orders_of_center(db, make_order):
    ready_north = await make_order(center="NORTH")
    await make_order(center="SOUTH")
    await make_order(center="NORTH", status="PENDING")
    await make_order(center="NORTH", status="CANCELLED")

    queue = await order_pipeline.list_ready_for_dispatch(db, center="north")
    assert [o.id for o in queue] == [ready_north.id]


@pytest.mark.asyncio
async def test_queue_excludes_assigned_orders(db, make_order, make_driver, make_vehicle):
    taken = await make_order()
    free = await make_order()
    driver = await make_driver()
    vehicle = await make_vehicle()
    await assignment_engine.assign(db, taken.id, driver.id, vehicle.id, uuid.uuid4())

    queue = await order_pipeline.list_ready_for_dispatch(db, center="NORTH")
    assert [o.id for o in queue] == [free.id]


@pytest.mark.asyncio
async def test_queue_search_and_date_filters(db, make_order):
    day = datetime(2026, 5, 4, 9, 30)
    target = await make_order(customer_name="Globex Corporation", order_date=day)
    await make_order(customer_name="Initech", order_date=day - timedelta(days=3))

    assert [o.id for o in await order_pipeline.list_ready_for_dispatch(db, search="globex")] == [target.id]
    assert [o.id for o in await order_pipeline.list_ready_for_dispatch(db, on_date=day.date())] == [target.id]
    ranged = await order_pipeline.list_ready_for_dispatch(
        db, start_date=(day - timedelta(days=3)).date(), end_date=day.date(),
    )
    assert len(ranged) == 2
    assert await order_pipeline.list_ready_for_dispatch(db, priority="HIGH") == []
