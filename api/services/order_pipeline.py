"""
Order Pipeline — order status transitions and the dispatch queue.

Transition table:
  PENDING            -> READY_FOR_DISPATCH (inventory clears) | CANCELLED
  READY_FOR_DISPATCH -> ASSIGNED | FAILED | CANCELLED
  ASSIGNED           -> IN_TRANSIT | FAILED
  IN_TRANSIT         -> DELIVERED | FAILED
DELIVERED, FAILED and CANCELLED are terminal.

Every accepted transition writes one OrderEvent audit row. Functions here
stage changes on the caller's session; the caller owns the commit, except
for the top-level operations (create / ready / cancel) which commit
themselves.
"""

import logging
import random
import string
import uuid
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, and_, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import utcnow_naive
from models.delivery import Delivery, ACTIVE_DELIVERY_STATUSES
from models.order import Order, OrderItem, OrderEvent
from schemas import OrderCreate
from services import dispatch_events
from services.errors import DispatchError, InvalidTransition, OrderNotFound
from services.resource_directory import resolve_center, resolve_filter

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "PENDING": frozenset({"READY_FOR_DISPATCH", "CANCELLED"}),
    "READY_FOR_DISPATCH": frozenset({"ASSIGNED", "FAILED", "CANCELLED"}),
    "ASSIGNED": frozenset({"IN_TRANSIT", "FAILED"}),
    "IN_TRANSIT": frozenset({"DELIVERED", "FAILED"}),
    "DELIVERED": frozenset(),
    "FAILED": frozenset(),
    "CANCELLED": frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset(s for s, nxt in ORDER_TRANSITIONS.items() if not nxt)


def is_valid_order_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def _generate_order_code() -> str:
    """Generate human-readable order code: ORD-YYMMDD-XXXX."""
    now = utcnow_naive()
    date_part = now.strftime("%y%m%d")
    rand_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"ORD-{date_part}-{rand_part}"


def transition_order(
    db: AsyncSession,
    order: Order,
    target: str,
    actor_type: str = "SYSTEM",
    actor_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> OrderEvent:
    """Apply one transition-table step to an order and stage its audit event."""
    current = order.status
    if not is_valid_order_transition(current, target):
        raise InvalidTransition(
            f"Order {order.order_code} cannot move from {current} to {target}",
            current_status=current,
            requested_status=target,
            order_id=order.id,
        )

    now = utcnow_naive()
    order.status = target
    if target == "READY_FOR_DISPATCH":
        order.ready_at = now
        order.ready_by = actor_id
    elif target == "DELIVERED":
        order.delivered_at = now
    elif target == "CANCELLED":
        order.cancelled_at = now

    event = OrderEvent(
        order_id=order.id,
        from_status=current,
        to_status=target,
        actor_type=actor_type,
        actor_id=actor_id,
        metadata_json=metadata or {},
    )
    db.add(event)
    logger.info("Order %s: %s -> %s (%s)", order.order_code, current, target, actor_type)
    return event


async def get_order(db: AsyncSession, order_id: uuid.UUID, for_update: bool = False) -> Order:
    query = select(Order).where(Order.id == order_id)
    if for_update:
        query = query.with_for_update()
    order = (await db.execute(query)).scalar_one_or_none()
    if not order:
        raise OrderNotFound(f"Order {order_id} not found", order_id=order_id)
    return order


async def create_order(db: AsyncSession, data: OrderCreate, actor_id: uuid.UUID | None = None) -> Order:
    """Intake seed: persist a PENDING order with its line items and computed total."""
    items = [
        OrderItem(product_ref=i.product_ref, quantity=i.quantity, unit_price=i.unit_price)
        for i in data.items
    ]
    total = round(sum(i.quantity * i.unit_price for i in data.items), 2)

    order = Order(
        id=uuid.uuid4(),
        order_code=_generate_order_code(),
        customer_name=data.customer_name,
        delivery_address=data.delivery_address,
        items=items,
        total_amount=total,
        priority=data.priority.value,
        delivery_center=data.delivery_center.value,
        status="PENDING",
    )
    db.add(order)
    db.add(OrderEvent(order_id=order.id, to_status="PENDING", actor_type="USER", actor_id=actor_id))
    await db.commit()
    await db.refresh(order)
    logger.info("Order created: %s center=%s total=%s", order.order_code, order.delivery_center, total)
    return order


async def mark_ready_for_dispatch(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> Order:
    """Called by the inventory collaborator once stock for the order is cleared."""
    try:
        order = await get_order(db, order_id, for_update=True)
        transition_order(db, order, "READY_FOR_DISPATCH", actor_type="INVENTORY", actor_id=actor_id)
    except DispatchError:
        await db.rollback()
        raise

    dispatch_events.notify_logistics(
        db,
        center=order.delivery_center,
        title="New Dispatch Ready",
        message=f"Order #{order.order_code} is ready for dispatch from {order.delivery_center} center.",
        related_id=order.id,
    )
    await db.commit()
    await db.refresh(order)

    await dispatch_events.publish(
        dispatch_events.ORDER_READY_FOR_DISPATCH,
        order_id=order.id,
        order_code=order.order_code,
        center=order.delivery_center,
        priority=order.priority,
    )
    return order


async def cancel_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> Order:
    try:
        order = await get_order(db, order_id, for_update=True)
        transition_order(db, order, "CANCELLED", actor_type="USER", actor_id=actor_id)
    except DispatchError:
        await db.rollback()
        raise
    await db.commit()
    await db.refresh(order)

    await dispatch_events.publish(
        dispatch_events.ORDER_CANCELLED,
        order_id=order.id,
        order_code=order.order_code,
        center=order.delivery_center,
    )
    return order


async def fail_unassigned_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    reason: str,
    actor_id: uuid.UUID | None = None,
) -> Order:
    """
    READY_FOR_DISPATCH -> FAILED for an order nobody can deliver
    (no capacity in its center, address unreachable). Once a delivery exists
    the order fails through the delivery instead.
    """
    try:
        order = await get_order(db, order_id, for_update=True)
        if order.status != "READY_FOR_DISPATCH":
            raise InvalidTransition(
                f"Order {order.order_code} is {order.status}; only unassigned dispatch-ready orders fail directly",
                current_status=order.status,
                requested_status="FAILED",
                order_id=order.id,
            )
        transition_order(db, order, "FAILED", actor_type="USER", actor_id=actor_id, metadata={"reason": reason})
    except DispatchError:
        await db.rollback()
        raise
    await db.commit()
    await db.refresh(order)

    await dispatch_events.publish(
        dispatch_events.ORDER_FAILED,
        order_id=order.id,
        order_code=order.order_code,
        center=order.delivery_center,
        reason=reason,
    )
    return order


def advance_on_assignment(
    db: AsyncSession,
    order: Order,
    actor_id: uuid.UUID | None = None,
    delivery_id: uuid.UUID | None = None,
) -> OrderEvent:
    """READY_FOR_DISPATCH -> ASSIGNED, staged inside the assignment transaction."""
    return transition_order(
        db, order, "ASSIGNED",
        actor_type="USER",
        actor_id=actor_id,
        metadata={"delivery_id": str(delivery_id)} if delivery_id else None,
    )


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


async def list_ready_for_dispatch(
    db: AsyncSession,
    center: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Order]:
    """
    Dispatch queue: READY_FOR_DISPATCH orders not bound to an active delivery.

    HIGH priority first, then oldest order first.
    """
    busy_orders = select(Delivery.order_id).where(Delivery.status.in_(ACTIVE_DELIVERY_STATUSES))
    filters = [Order.status == "READY_FOR_DISPATCH", Order.id.not_in(busy_orders)]

    center = resolve_filter(center)
    if center:
        filters.append(Order.delivery_center == resolve_center(center))
    priority = resolve_filter(priority)
    if priority:
        filters.append(Order.priority == priority.upper())
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Order.order_code.ilike(pattern), Order.customer_name.ilike(pattern)))
    if on_date:
        day_start, day_end = _day_bounds(on_date)
        filters.extend([Order.order_date >= day_start, Order.order_date < day_end])
    if start_date:
        filters.append(Order.order_date >= _day_bounds(start_date)[0])
    if end_date:
        filters.append(Order.order_date < _day_bounds(end_date)[1])

    query = (
        select(Order)
        .where(and_(*filters))
        .order_by(case((Order.priority == "HIGH", 0), else_=1), Order.order_date.asc())
    )
    result = await db.execute(query)
    return list(result.scalars().all())
