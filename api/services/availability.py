"""
Availability Index — which drivers and vehicles of a center can take a job now.

available = eligible for the center AND not referenced by any delivery whose
status is non-terminal. Always computed against the store at call time; a
cached answer is how double-booking happens.
"""

import uuid

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from models.delivery import Delivery, ACTIVE_DELIVERY_STATUSES
from models.driver import Driver
from models.vehicle import Vehicle
from services.resource_directory import resolve_center


def _busy_drivers():
    return select(Delivery.driver_id).where(Delivery.status.in_(ACTIVE_DELIVERY_STATUSES))


def _busy_vehicles():
    return select(Delivery.vehicle_id).where(Delivery.status.in_(ACTIVE_DELIVERY_STATUSES))


async def available_drivers(db: AsyncSession, center: str) -> list[Driver]:
    center = resolve_center(center)
    query = (
        select(Driver)
        .where(and_(
            Driver.center == center,
            Driver.approval_status == "APPROVED",
            Driver.active_status == "ACTIVE",
            Driver.id.not_in(_busy_drivers()),
        ))
        .order_by(Driver.full_name)
    )
    return list((await db.execute(query)).scalars().all())


async def available_vehicles(db: AsyncSession, center: str) -> list[Vehicle]:
    center = resolve_center(center)
    query = (
        select(Vehicle)
        .where(and_(
            Vehicle.center == center,
            Vehicle.active_status == "ACTIVE",
            Vehicle.id.not_in(_busy_vehicles()),
        ))
        .order_by(Vehicle.vehicle_code)
    )
    return list((await db.execute(query)).scalars().all())


async def active_delivery_for_driver(db: AsyncSession, driver_id: uuid.UUID) -> Delivery | None:
    query = select(Delivery).where(and_(
        Delivery.driver_id == driver_id,
        Delivery.status.in_(ACTIVE_DELIVERY_STATUSES),
    ))
    return (await db.execute(query)).scalars().first()


async def active_delivery_for_vehicle(db: AsyncSession, vehicle_id: uuid.UUID) -> Delivery | None:
    query = select(Delivery).where(and_(
        Delivery.vehicle_id == vehicle_id,
        Delivery.status.in_(ACTIVE_DELIVERY_STATUSES),
    ))
    return (await db.execute(query)).scalars().first()
