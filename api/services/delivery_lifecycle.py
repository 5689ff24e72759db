"""
Delivery Lifecycle & Timeline.

Delivery state machine:
  ASSIGNED   -> PICKED_UP | IN_TRANSIT | FAILED
  PICKED_UP  -> IN_TRANSIT | FAILED
  IN_TRANSIT -> DELIVERED | FAILED
DELIVERED and FAILED are terminal. "ON_THE_WAY" is accepted as an input alias
of IN_TRANSIT; only IN_TRANSIT is ever stored.

Status changes take a row lock on the delivery, append exactly one timeline
event and propagate to the order in the same transaction. Position updates
overwrite last_known_position (last write wins) and are kept as history.
"""

import logging
import math
import uuid
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import as_naive_utc, utcnow_naive
from models.delivery import Delivery, DeliveryTimelineEvent, DeliveryPosition
from models.driver import Driver
from models.order import Order
from models.vehicle import Vehicle
from schemas import DeliveryStatus, normalize_delivery_status
from services import dispatch_events
from services.errors import (
    DeliveryNotFound, DispatchError, InvalidTransition, StoreFailure, ValidationFailed,
)
from services.order_pipeline import get_order, transition_order
from services.resource_directory import resolve_center, resolve_filter

logger = logging.getLogger(__name__)

DELIVERY_TRANSITIONS: dict[str, frozenset[str]] = {
    "ASSIGNED": frozenset({"PICKED_UP", "IN_TRANSIT", "FAILED"}),
    "PICKED_UP": frozenset({"IN_TRANSIT", "FAILED"}),
    "IN_TRANSIT": frozenset({"DELIVERED", "FAILED"}),
    "DELIVERED": frozenset(),
    "FAILED": frozenset(),
}

# Delivery status -> order status it drives the order to
_ORDER_PROPAGATION = {
    "IN_TRANSIT": "IN_TRANSIT",
    "DELIVERED": "DELIVERED",
    "FAILED": "FAILED",
}


def resolve_delivery_status(value: str) -> str:
    try:
        return DeliveryStatus(normalize_delivery_status(value)).value
    except ValueError:
        raise ValidationFailed(f"Unknown delivery status: {value}", field="status", value=value)


def is_valid_delivery_transition(current: str, target: str) -> bool:
    return target in DELIVERY_TRANSITIONS.get(current, frozenset())


async def get_delivery(db: AsyncSession, delivery_id: uuid.UUID, for_update: bool = False) -> Delivery:
    query = (
        select(Delivery)
        .where(Delivery.id == delivery_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    delivery = (await db.execute(query)).scalar_one_or_none()
    if not delivery:
        raise DeliveryNotFound(f"Delivery {delivery_id} not found", delivery_id=delivery_id)
    return delivery


def _append_timeline(
    delivery: Delivery,
    status: str,
    at: datetime,
    note: str | None = None,
    location: str | None = None,
) -> DeliveryTimelineEvent:
    next_seq = (delivery.timeline[-1].seq + 1) if delivery.timeline else 1
    event = DeliveryTimelineEvent(seq=next_seq, status=status, created_at=at, note=note, location=location)
    delivery.timeline.append(event)
    return event


async def _commit(db: AsyncSession, delivery_id: uuid.UUID) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # Only a concurrent timeline append can collide here
        raise StoreFailure(f"Concurrent update on delivery {delivery_id}, retry", delivery_id=delivery_id) from e


async def advance_status(
    db: AsyncSession,
    delivery_id: uuid.UUID,
    new_status: str,
    note: str | None = None,
    location: str | None = None,
    actor_id: uuid.UUID | None = None,
) -> Delivery:
    """Move a delivery one step along its state machine and sync the order."""
    target = resolve_delivery_status(new_status)

    try:
        delivery = await get_delivery(db, delivery_id, for_update=True)
        current = delivery.status
        if not is_valid_delivery_transition(current, target):
            raise InvalidTransition(
                f"Delivery {delivery.delivery_code} cannot move from {current} to {target}",
                current_status=current,
                requested_status=target,
                delivery_id=delivery.id,
            )

        now = utcnow_naive()
        delivery.status = target
        if target == "DELIVERED":
            delivery.completed_at = now
        _append_timeline(delivery, target, now, note=note, location=location)

        order_target = _ORDER_PROPAGATION.get(target)
        if order_target:
            order = await get_order(db, delivery.order_id, for_update=True)
            if order.status != order_target:
                transition_order(
                    db, order, order_target,
                    actor_type="DRIVER",
                    actor_id=actor_id,
                    metadata={"delivery_id": str(delivery.id)},
                )
    except DispatchError:
        await db.rollback()
        raise

    await _commit(db, delivery.id)
    logger.info("Delivery %s: %s -> %s", delivery.delivery_code, current, target)

    await dispatch_events.publish(
        dispatch_events.DELIVERY_STATUS_CHANGED,
        delivery_id=delivery.id,
        delivery_code=delivery.delivery_code,
        order_id=delivery.order_id,
        driver_id=delivery.driver_id,
        from_status=current,
        to_status=target,
        center=delivery.center,
    )
    return await get_delivery(db, delivery.id)


def _validate_position(lat: float, lng: float, speed: float | None, heading: float | None) -> None:
    for name, value in (("lat", lat), ("lng", lng), ("speed", speed), ("heading", heading)):
        if value is not None and not math.isfinite(value):
            raise ValidationFailed(f"{name} must be a finite number", field=name)
    if not -90 <= lat <= 90:
        raise ValidationFailed("lat must be within [-90, 90]", field="lat", value=lat)
    if not -180 <= lng <= 180:
        raise ValidationFailed("lng must be within [-180, 180]", field="lng", value=lng)
    if speed is not None and speed < 0:
        raise ValidationFailed("speed cannot be negative", field="speed", value=speed)
    if heading is not None and not 0 <= heading < 360:
        raise ValidationFailed("heading must be within [0, 360)", field="heading", value=heading)


def _sample_due(last_sampled_at: datetime | None, now: datetime, interval: int) -> bool:
    if interval <= 0:
        return False
    last_sampled_at = as_naive_utc(last_sampled_at)
    return last_sampled_at is None or as_naive_utc(now) - last_sampled_at >= timedelta(seconds=interval)


async def record_position(
    db: AsyncSession,
    delivery_id: uuid.UUID,
    lat: float,
    lng: float,
    speed: float | None = None,
    heading: float | None = None,
) -> None:
    """Accept a reported position as fact; the latest write wins."""
    _validate_position(lat, lng, speed, heading)

    try:
        delivery = await get_delivery(db, delivery_id, for_update=True)
        if delivery.is_terminal:
            raise InvalidTransition(
                f"Delivery {delivery.delivery_code} is {delivery.status}; position tracking is closed",
                current_status=delivery.status,
                delivery_id=delivery.id,
            )
    except DispatchError:
        await db.rollback()
        raise

    now = utcnow_naive()
    delivery.last_lat = lat
    delivery.last_lng = lng
    delivery.last_speed = speed
    delivery.last_heading = heading
    delivery.last_position_at = now
    db.add(DeliveryPosition(
        delivery_id=delivery.id, lat=lat, lng=lng, speed=speed, heading=heading, recorded_at=now,
    ))

    if _sample_due(delivery.last_sampled_at, now, settings.TIMELINE_POSITION_SAMPLE_SECONDS):
        _append_timeline(delivery, delivery.status, now, note="Position update", location=f"{lat:.6f},{lng:.6f}")
        delivery.last_sampled_at = now

    await _commit(db, delivery.id)
    logger.debug("Delivery %s position: %.6f,%.6f", delivery.delivery_code, lat, lng)


async def get_timeline(db: AsyncSession, delivery_id: uuid.UUID) -> list[DeliveryTimelineEvent]:
    exists = (await db.execute(select(Delivery.id).where(Delivery.id == delivery_id))).scalar_one_or_none()
    if not exists:
        raise DeliveryNotFound(f"Delivery {delivery_id} not found", delivery_id=delivery_id)
    result = await db.execute(
        select(DeliveryTimelineEvent)
        .where(DeliveryTimelineEvent.delivery_id == delivery_id)
        .order_by(DeliveryTimelineEvent.seq.asc())
    )
    return list(result.scalars().all())


async def list_positions(db: AsyncSession, delivery_id: uuid.UUID, limit: int = 100) -> list[DeliveryPosition]:
    """Position history, newest first."""
    await get_delivery(db, delivery_id)
    result = await db.execute(
        select(DeliveryPosition)
        .where(DeliveryPosition.delivery_id == delivery_id)
        .order_by(DeliveryPosition.recorded_at.desc(), DeliveryPosition.id.desc())
        .limit(max(1, min(limit, 1000)))
    )
    return list(result.scalars().all())


async def list_deliveries(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    center: str | None = None,
    status: str | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """Paged, filtered delivery history, newest assignment first."""
    if page < 1:
        raise ValidationFailed("page must be >= 1", field="page", value=page)
    if limit < 1:
        raise ValidationFailed("limit must be >= 1", field="limit", value=limit)
    limit = min(limit, settings.DELIVERY_PAGE_SIZE_MAX)

    filters = []
    center = resolve_filter(center)
    if center:
        filters.append(Delivery.center == resolve_center(center))
    status = resolve_filter(status)
    if status:
        filters.append(Delivery.status == resolve_delivery_status(status))
    if start_date:
        filters.append(Delivery.assigned_at >= datetime.combine(start_date, time.min))
    if end_date:
        # end date is inclusive of the whole day
        filters.append(Delivery.assigned_at < datetime.combine(end_date, time.min) + timedelta(days=1))

    query = (
        select(Delivery)
        .join(Order, Delivery.order_id == Order.id)
        .join(Driver, Delivery.driver_id == Driver.id)
    )
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Order.order_code.ilike(pattern),
            Order.customer_name.ilike(pattern),
            Delivery.delivery_code.ilike(pattern),
            Driver.full_name.ilike(pattern),
            Driver.email.ilike(pattern),
            Driver.phone.ilike(pattern),
        ))
    query = query.where(and_(*filters))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(Delivery.assigned_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return {
        "data": list(result.scalars().all()),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


async def delivery_stats(db: AsyncSession) -> dict:
    """Dispatch dashboard counters."""
    today_start = datetime.combine(utcnow_naive().date(), time.min)
    today_end = today_start + timedelta(days=1)

    async def count(query) -> int:
        return (await db.execute(query)).scalar() or 0

    return {
        "total": await count(select(func.count(Delivery.id))),
        "today": await count(select(func.count(Delivery.id)).where(and_(
            Delivery.assigned_at >= today_start, Delivery.assigned_at < today_end,
        ))),
        "delivered": await count(select(func.count(Delivery.id)).where(Delivery.status == "DELIVERED")),
        "failed": await count(select(func.count(Delivery.id)).where(Delivery.status == "FAILED")),
        "in_transit": await count(select(func.count(Delivery.id)).where(Delivery.status == "IN_TRANSIT")),
        "drivers": await count(select(func.count(Driver.id)).where(and_(
            Driver.approval_status == "APPROVED", Driver.active_status == "ACTIVE",
        ))),
        "vehicles": await count(select(func.count(Vehicle.id)).where(Vehicle.active_status == "ACTIVE")),
    }
