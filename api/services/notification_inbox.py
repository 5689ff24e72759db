"""Notification inbox queries for drivers and logistics officers."""

import uuid

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from models.notification import Notification
from services.errors import NotificationNotFound
from services.resource_directory import get_driver, resolve_center, resolve_filter


async def list_driver_notifications(
    db: AsyncSession,
    driver_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    await get_driver(db, driver_id)
    filters = [Notification.recipient_driver_id == driver_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))
    result = await db.execute(
        select(Notification).where(and_(*filters)).order_by(Notification.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def list_logistics_notifications(
    db: AsyncSession,
    center: str | None = None,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    filters = [Notification.audience == "LOGISTICS"]
    center = resolve_filter(center)
    if center:
        filters.append(Notification.center == resolve_center(center))
    if unread_only:
        filters.append(Notification.is_read.is_(False))
    result = await db.execute(
        select(Notification).where(and_(*filters)).order_by(Notification.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, notification_id: uuid.UUID) -> Notification:
    note = (await db.execute(
        select(Notification).where(Notification.id == notification_id)
    )).scalar_one_or_none()
    if not note:
        raise NotificationNotFound(f"Notification {notification_id} not found", notification_id=notification_id)
    note.is_read = True
    await db.commit()
    await db.refresh(note)
    return note
