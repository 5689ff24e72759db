"""
Assignment Engine — binds one order to one driver and one vehicle.

Preconditions are checked in a fixed order and each failure has its own
error code. The availability pre-check only gives a readable error; the
partial unique indexes on deliveries are what make two concurrent
assignments of the same driver or vehicle impossible. A unique violation on
flush is rolled back and reported as ResourceAlreadyAssigned, so a caller's
retry after a StoreFailure can never produce a second delivery.
"""

import logging
import random
import string
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import utcnow_naive
from models.delivery import Delivery, DeliveryTimelineEvent
from services import dispatch_events
from services.availability import active_delivery_for_driver, active_delivery_for_vehicle
from services.errors import (
    DispatchError, DriverCenterMismatch, DriverIneligible, OrderNotDispatchable,
    ResourceAlreadyAssigned, StoreFailure, ValidationFailed, VehicleCenterMismatch,
    VehicleIneligible,
)
from services.order_pipeline import advance_on_assignment, get_order
from services.resource_directory import get_driver, get_vehicle

logger = logging.getLogger(__name__)


def _generate_delivery_code() -> str:
    """Generate human-readable delivery code: DLV-YYMMDD-XXXXXX."""
    date_part = utcnow_naive().strftime("%y%m%d")
    rand_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"DLV-{date_part}-{rand_part}"


# Postgres reports the index name, SQLite reports "table.column"
_ACTIVE_INDEX_MARKERS = (
    ("driver", ("uq_deliveries_active_driver", "deliveries.driver_id")),
    ("vehicle", ("uq_deliveries_active_vehicle", "deliveries.vehicle_id")),
    ("order", ("uq_deliveries_active_order", "deliveries.order_id")),
)


def _violated_index(message: str) -> str | None:
    for resource, markers in _ACTIVE_INDEX_MARKERS:
        if markers[0] in message:
            return resource
    for resource, markers in _ACTIVE_INDEX_MARKERS:
        if markers[1] in message:
            return resource
    return None


def _conflict_from_integrity_error(
    exc: IntegrityError,
    order_id: uuid.UUID,
    driver_id: uuid.UUID,
    vehicle_id: uuid.UUID,
) -> DispatchError:
    """Translate a unique violation on deliveries into the matching domain error."""
    message = str(exc.orig)
    resource = _violated_index(message)
    if resource == "driver":
        return ResourceAlreadyAssigned(
            f"Driver {driver_id} is already on an active delivery",
            resource="driver",
            resource_id=driver_id,
        )
    if resource == "vehicle":
        return ResourceAlreadyAssigned(
            f"Vehicle {vehicle_id} is already on an active delivery",
            resource="vehicle",
            resource_id=vehicle_id,
        )
    if resource == "order":
        return OrderNotDispatchable(
            f"Order {order_id} already has an active delivery",
            order_id=order_id,
        )
    return StoreFailure(f"Assignment could not be stored: {message[:200]}", order_id=order_id)


async def _check_preconditions(
    db: AsyncSession,
    order_id: uuid.UUID,
    driver_id: uuid.UUID,
    vehicle_id: uuid.UUID,
):
    # 1. Order
    order = await get_order(db, order_id, for_update=True)
    if order.status != "READY_FOR_DISPATCH":
        raise OrderNotDispatchable(
            f"Order {order.order_code} is {order.status}, not READY_FOR_DISPATCH",
            order_id=order.id,
            current_status=order.status,
        )

    # 2. Driver
    driver = await get_driver(db, driver_id)
    if not driver.is_eligible:
        raise DriverIneligible(
            f"Driver {driver.full_name} is not eligible "
            f"(approval={driver.approval_status}, status={driver.active_status})",
            driver_id=driver.id,
            approval_status=driver.approval_status,
            active_status=driver.active_status,
        )
    if driver.center != order.delivery_center:
        raise DriverCenterMismatch(
            f"Driver {driver.full_name} belongs to {driver.center}, "
            f"cannot deliver order {order.order_code} from {order.delivery_center}",
            driver_id=driver.id,
            driver_center=driver.center,
            order_center=order.delivery_center,
        )

    # 3. Vehicle
    vehicle = await get_vehicle(db, vehicle_id)
    if not vehicle.is_eligible:
        raise VehicleIneligible(
            f"Vehicle {vehicle.vehicle_code} is not eligible (status={vehicle.active_status})",
            vehicle_id=vehicle.id,
            active_status=vehicle.active_status,
        )
    if vehicle.center != order.delivery_center:
        raise VehicleCenterMismatch(
            f"Vehicle {vehicle.vehicle_code} belongs to {vehicle.center}, "
            f"cannot deliver order {order.order_code} from {order.delivery_center}",
            vehicle_id=vehicle.id,
            vehicle_center=vehicle.center,
            order_center=order.delivery_center,
        )

    # 4. Availability
    busy = await active_delivery_for_driver(db, driver.id)
    if busy:
        raise ResourceAlreadyAssigned(
            f"Driver {driver.full_name} is currently assigned to delivery {busy.delivery_code}",
            resource="driver",
            resource_id=driver.id,
            delivery_id=busy.id,
        )
    busy = await active_delivery_for_vehicle(db, vehicle.id)
    if busy:
        raise ResourceAlreadyAssigned(
            f"Vehicle {vehicle.vehicle_code} is currently assigned to delivery {busy.delivery_code}",
            resource="vehicle",
            resource_id=vehicle.id,
            delivery_id=busy.id,
        )

    return order, driver, vehicle


async def assign(
    db: AsyncSession,
    order_id: uuid.UUID,
    driver_id: uuid.UUID,
    vehicle_id: uuid.UUID,
    requesting_user_id: uuid.UUID,
    notes: str | None = None,
) -> Delivery:
    """Create the delivery and advance the order, all or nothing."""
    if not (order_id and driver_id and vehicle_id and requesting_user_id):
        raise ValidationFailed("order_id, driver_id, vehicle_id and requesting_user_id are required")

    try:
        order, driver, vehicle = await _check_preconditions(db, order_id, driver_id, vehicle_id)
    except DispatchError:
        await db.rollback()
        raise

    now = utcnow_naive()
    delivery = Delivery(
        id=uuid.uuid4(),
        delivery_code=_generate_delivery_code(),
        order_id=order.id,
        driver_id=driver.id,
        vehicle_id=vehicle.id,
        assigned_by=requesting_user_id,
        center=order.delivery_center,
        status="ASSIGNED",
        assigned_at=now,
        notes=notes,
        timeline=[DeliveryTimelineEvent(seq=1, status="ASSIGNED", created_at=now, note=notes)],
    )
    db.add(delivery)
    advance_on_assignment(db, order, actor_id=requesting_user_id, delivery_id=delivery.id)
    dispatch_events.notify_driver(
        db,
        driver.id,
        title="New Delivery Assignment",
        message=f"You have been assigned to Order #{order.order_code}. Please check your dashboard.",
        kind="ASSIGNMENT",
        related_id=delivery.id,
    )

    try:
        await db.flush()
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Assignment race lost: order=%s driver=%s vehicle=%s", order_id, driver_id, vehicle_id)
        raise _conflict_from_integrity_error(e, order_id, driver_id, vehicle_id)

    logger.info(
        "Delivery %s created: order=%s driver=%s vehicle=%s center=%s by=%s",
        delivery.delivery_code, order.order_code, driver.id, vehicle.vehicle_code,
        delivery.center, requesting_user_id,
    )

    await dispatch_events.publish(
        dispatch_events.DELIVERY_ASSIGNED,
        delivery_id=delivery.id,
        delivery_code=delivery.delivery_code,
        order_id=order.id,
        order_code=order.order_code,
        driver_id=driver.id,
        vehicle_id=vehicle.id,
        center=delivery.center,
        assigned_by=requesting_user_id,
    )

    result = await db.execute(
        select(Delivery)
        .where(Delivery.id == delivery.id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()
