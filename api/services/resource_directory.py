"""Resource Directory — drivers and vehicles, their home center and status."""

import logging
import uuid

from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import utcnow_naive
from models.driver import Driver
from models.vehicle import Vehicle
from schemas import Center, DriverCreate, VehicleCreate, normalize_center
from services import dispatch_events
from services.errors import (
    DriverNotFound, DuplicateResource, ValidationFailed, VehicleNotFound,
)

logger = logging.getLogger(__name__)


def resolve_filter(value: str | None) -> str | None:
    """Query-string filters treat '' and 'All' as no filter."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.upper() == "ALL":
        return None
    return value


def resolve_center(value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed("center is required", field="center")
    try:
        return Center(normalize_center(value)).value
    except ValueError:
        raise ValidationFailed(f"Unknown distribution center: {value}", field="center", value=value)


# ── Drivers ────────────────────────────────────────────────

async def list_drivers(
    db: AsyncSession,
    center: str | None = None,
    approval_status: str | None = None,
    active_status: str | None = None,
    search: str | None = None,
) -> list[Driver]:
    filters = []
    center = resolve_filter(center)
    if center:
        filters.append(Driver.center == resolve_center(center))
    approval_status = resolve_filter(approval_status)
    if approval_status:
        filters.append(Driver.approval_status == approval_status.upper())
    active_status = resolve_filter(active_status)
    if active_status:
        filters.append(Driver.active_status == active_status.upper())
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Driver.full_name.ilike(pattern),
            Driver.email.ilike(pattern),
            Driver.phone.ilike(pattern),
            Driver.license_number.ilike(pattern),
        ))

    query = select(Driver).where(and_(*filters)).order_by(Driver.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_driver(db: AsyncSession, driver_id: uuid.UUID) -> Driver:
    driver = (await db.execute(select(Driver).where(Driver.id == driver_id))).scalar_one_or_none()
    if not driver:
        raise DriverNotFound(f"Driver {driver_id} not found", driver_id=driver_id)
    return driver


async def create_driver(db: AsyncSession, data: DriverCreate) -> Driver:
    """Register a driver; approval starts PENDING."""
    driver = Driver(
        full_name=data.full_name,
        email=data.email.lower(),
        phone=data.phone,
        license_number=data.license_number,
        center=data.center.value,
    )
    db.add(driver)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateResource(f"A driver with email {data.email} already exists", email=data.email)
    await db.refresh(driver)
    logger.info("Driver registered: id=%s center=%s", driver.id, driver.center)
    return driver


async def set_driver_approval(
    db: AsyncSession,
    driver_id: uuid.UUID,
    status: str,
    note: str | None = None,
    reviewer_id: uuid.UUID | None = None,
) -> Driver:
    if status not in ("APPROVED", "REJECTED"):
        raise ValidationFailed(f"Invalid approval status: {status}", field="status", value=status)

    driver = await get_driver(db, driver_id)
    driver.approval_status = status
    driver.rejection_reason = note if status == "REJECTED" else None
    driver.approved_by = reviewer_id
    driver.approved_at = utcnow_naive()

    dispatch_events.notify_driver(
        db,
        driver.id,
        title="Registration Approved" if status == "APPROVED" else "Registration Rejected",
        message=(
            "Your driver account has been approved. You can now receive deliveries."
            if status == "APPROVED"
            else f"Your driver account was not approved. Reason: {note or 'No specific reason provided.'}"
        ),
        kind="SYSTEM",
    )
    await db.commit()
    await db.refresh(driver)
    logger.info("Driver %s approval -> %s (reviewer=%s)", driver.id, status, reviewer_id)

    await dispatch_events.publish(
        dispatch_events.DRIVER_APPROVAL_CHANGED,
        driver_id=driver.id,
        email=driver.email,
        approval_status=status,
        note=note,
    )
    return driver


async def set_driver_active_status(db: AsyncSession, driver_id: uuid.UUID, status: str) -> Driver:
    driver = await get_driver(db, driver_id)
    driver.active_status = status
    await db.commit()
    await db.refresh(driver)
    return driver


# ── Vehicles ───────────────────────────────────────────────

async def list_vehicles(
    db: AsyncSession,
    center: str | None = None,
    active_status: str | None = None,
    search: str | None = None,
) -> list[Vehicle]:
    filters = []
    center = resolve_filter(center)
    if center:
        filters.append(Vehicle.center == resolve_center(center))
    active_status = resolve_filter(active_status)
    if active_status:
        filters.append(Vehicle.active_status == active_status.upper())
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Vehicle.vehicle_code.ilike(pattern),
            Vehicle.model.ilike(pattern),
            Vehicle.license_plate.ilike(pattern),
        ))

    query = select(Vehicle).where(and_(*filters)).order_by(Vehicle.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_vehicle(db: AsyncSession, vehicle_id: uuid.UUID) -> Vehicle:
    vehicle = (await db.execute(select(Vehicle).where(Vehicle.id == vehicle_id))).scalar_one_or_none()
    if not vehicle:
        raise VehicleNotFound(f"Vehicle {vehicle_id} not found", vehicle_id=vehicle_id)
    return vehicle


async def create_vehicle(db: AsyncSession, data: VehicleCreate) -> Vehicle:
    vehicle = Vehicle(
        vehicle_code=data.vehicle_code,
        model=data.model,
        license_plate=data.license_plate.upper(),
        vehicle_type=data.vehicle_type.value,
        center=data.center.value,
    )
    db.add(vehicle)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateResource(
            f"Vehicle code {data.vehicle_code} or plate {data.license_plate} is already registered",
            vehicle_code=data.vehicle_code,
            license_plate=data.license_plate,
        )
    await db.refresh(vehicle)
    logger.info("Vehicle registered: %s center=%s", vehicle.vehicle_code, vehicle.center)
    return vehicle


async def set_vehicle_status(db: AsyncSession, vehicle_id: uuid.UUID, status: str) -> Vehicle:
    vehicle = await get_vehicle(db, vehicle_id)
    vehicle.active_status = status
    await db.commit()
    await db.refresh(vehicle)
    return vehicle
