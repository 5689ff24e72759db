"""
Logistics officer endpoints — dispatch queue, availability, assignment,
delivery tracking, proof of delivery and dashboard stats.
"""

import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import get_db
from schemas import OrderResponse, DriverResponse, VehicleResponse
from schemas.delivery import (
    AssignmentCreate, DeliveryResponse, DeliveryPage, DeliveryStatusUpdate,
    TimelineEventResponse, PositionUpdate, PositionPingResponse,
    VerificationUpdate, ProofAttach, Ack, DispatchStats,
)
from services import (
    assignment_engine, availability, delivery_lifecycle, order_pipeline, verification,
)

router = APIRouter()


# ── Dispatch Queue ─────────────────────────────────────────

@router.get("/dispatch-queue", response_model=list[OrderResponse])
async def dispatch_queue(
    center: str | None = None,
    priority: str | None = None,
    search: str | None = None,
    on_date: date | None = Query(None, alias="date"),
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Orders ready for dispatch, HIGH priority first then oldest first."""
    return await order_pipeline.list_ready_for_dispatch(
        db, center=center, priority=priority, search=search,
        on_date=on_date, start_date=start_date, end_date=end_date,
    )


@router.get("/available-drivers", response_model=list[DriverResponse])
async def available_drivers(center: str = Query(...), db: AsyncSession = Depends(get_db)):
    return await availability.available_drivers(db, center)


@router.get("/available-vehicles", response_model=list[VehicleResponse])
async def available_vehicles(center: str = Query(...), db: AsyncSession = Depends(get_db)):
    return await availability.available_vehicles(db, center)


# ── Assignment ─────────────────────────────────────────────

@router.post("/assign", response_model=DeliveryResponse, status_code=201)
async def assign(data: AssignmentCreate, db: AsyncSession = Depends(get_db)):
    """Bind a dispatch-ready order to an available driver and vehicle."""
    return await assignment_engine.assign(
        db,
        order_id=data.order_id,
        driver_id=data.driver_id,
        vehicle_id=data.vehicle_id,
        requesting_user_id=data.requesting_user_id,
        notes=data.notes,
    )


# ── Deliveries ─────────────────────────────────────────────

@router.get("/deliveries", response_model=DeliveryPage)
async def list_deliveries(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    center: str | None = None,
    status: str | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await delivery_lifecycle.list_deliveries(
        db, page=page, limit=min(limit, settings.DELIVERY_PAGE_SIZE_MAX),
        center=center, status=status, search=search,
        start_date=start_date, end_date=end_date,
    )


@router.get("/deliveries/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(delivery_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await delivery_lifecycle.get_delivery(db, delivery_id)


@router.put("/deliveries/{delivery_id}/status", response_model=DeliveryResponse)
async def update_status(
    delivery_id: uuid.UUID,
    data: DeliveryStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Advance a delivery; the order follows in the same transaction."""
    return await delivery_lifecycle.advance_status(
        db, delivery_id, data.status.value,
        note=data.note, location=data.location, actor_id=data.actor_id,
    )


@router.get("/deliveries/{delivery_id}/timeline", response_model=list[TimelineEventResponse])
async def get_timeline(delivery_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await delivery_lifecycle.get_timeline(db, delivery_id)


# ── Tracking ───────────────────────────────────────────────

@router.post("/deliveries/{delivery_id}/position", response_model=Ack)
async def record_position(
    delivery_id: uuid.UUID,
    data: PositionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Driver app position ping."""
    await delivery_lifecycle.record_position(
        db, delivery_id, data.lat, data.lng, speed=data.speed, heading=data.heading,
    )
    return Ack(delivery_id=delivery_id)


@router.get("/deliveries/{delivery_id}/positions", response_model=list[PositionPingResponse])
async def list_positions(
    delivery_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return await delivery_lifecycle.list_positions(db, delivery_id, limit=limit)


# ── Verification & Proof ───────────────────────────────────

@router.patch("/deliveries/{delivery_id}/verify", response_model=Ack)
async def set_verification(
    delivery_id: uuid.UUID,
    data: VerificationUpdate,
    db: AsyncSession = Depends(get_db),
):
    await verification.set_verification(db, delivery_id, data.verified, reviewer_id=data.reviewer_id)
    return Ack(delivery_id=delivery_id)


@router.post("/deliveries/{delivery_id}/proof", response_model=Ack)
async def attach_proof(
    delivery_id: uuid.UUID,
    data: ProofAttach,
    db: AsyncSession = Depends(get_db),
):
    await verification.attach_proof(
        db, delivery_id, photo_url=data.photo_url, signature_url=data.signature_url,
    )
    return Ack(delivery_id=delivery_id)


# ── Stats ──────────────────────────────────────────────────

@router.get("/stats", response_model=DispatchStats)
async def stats(db: AsyncSession = Depends(get_db)):
    return await delivery_lifecycle.delivery_stats(db)
