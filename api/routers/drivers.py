"""Driver directory endpoints — registration, approval, duty status, inbox."""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import (
    DriverCreate, DriverResponse, DriverApprovalUpdate, DriverActiveUpdate,
    NotificationResponse,
)
from services import resource_directory, notification_inbox

router = APIRouter()


# ── CRUD ───────────────────────────────────────────────────

@router.post("/", response_model=DriverResponse, status_code=201)
async def create_driver(data: DriverCreate, db: AsyncSession = Depends(get_db)):
    """Register a driver. New drivers wait for approval before they can be assigned."""
    return await resource_directory.create_driver(db, data)


@router.get("/", response_model=list[DriverResponse])
async def list_drivers(
    center: str | None = None,
    approval_status: str | None = None,
    active_status: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await resource_directory.list_drivers(
        db, center=center, approval_status=approval_status,
        active_status=active_status, search=search,
    )


@router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(driver_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await resource_directory.get_driver(db, driver_id)


# ── Status ─────────────────────────────────────────────────

@router.patch("/{driver_id}/approval", response_model=DriverResponse)
async def update_approval(
    driver_id: uuid.UUID,
    data: DriverApprovalUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a driver registration."""
    return await resource_directory.set_driver_approval(
        db, driver_id, data.status.value, note=data.note, reviewer_id=data.reviewer_id,
    )


@router.patch("/{driver_id}/active", response_model=DriverResponse)
async def update_active_status(
    driver_id: uuid.UUID,
    data: DriverActiveUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await resource_directory.set_driver_active_status(db, driver_id, data.status.value)


# ── Inbox ──────────────────────────────────────────────────

@router.get("/{driver_id}/notifications", response_model=list[NotificationResponse])
async def driver_notifications(
    driver_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await notification_inbox.list_driver_notifications(
        db, driver_id, unread_only=unread_only, limit=limit,
    )
