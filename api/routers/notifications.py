"""Logistics notification inbox endpoints."""

import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import NotificationResponse
from services import notification_inbox

router = APIRouter()


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    center: str | None = None,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Notifications addressed to logistics officers, optionally for one center."""
    return await notification_inbox.list_logistics_notifications(
        db, center=center, unread_only=unread_only, limit=limit,
    )


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await notification_inbox.mark_read(db, notification_id)
