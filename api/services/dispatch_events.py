"""
Dispatch Events — hooks for external collaborators.

The notification dispatcher, the inventory service and anything else that
cares about dispatch activity subscribe here instead of being called by the
engine directly. Events are published after the owning transaction commits.

Delivery is fire-and-forget: a failing subscriber or webhook is logged and
NEVER propagates into the request that produced the event. Webhook POSTs run
as background tasks; the request does not wait for them.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import utcnow_naive
from models.notification import Notification

logger = logging.getLogger(__name__)

ORDER_READY_FOR_DISPATCH = "order.ready_for_dispatch"
ORDER_CANCELLED = "order.cancelled"
ORDER_FAILED = "order.failed"
DELIVERY_ASSIGNED = "delivery.assigned"
DELIVERY_STATUS_CHANGED = "delivery.status_changed"
DELIVERY_VERIFICATION_CHANGED = "delivery.verification_changed"
DRIVER_APPROVAL_CHANGED = "driver.approval_changed"


@dataclass
class DispatchEvent:
    name: str
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=utcnow_naive)

    def to_json(self) -> dict[str, Any]:
        return {
            "event": self.name,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in self.payload.items()},
        }


Subscriber = Callable[[DispatchEvent], Awaitable[None]]

_subscribers: list[Subscriber] = []

# Strong references keep in-flight webhook tasks from being garbage collected
_pending_webhooks: set[asyncio.Task] = set()


def subscribe(callback: Subscriber) -> Subscriber:
    """Register an async callback for every dispatch event. Usable as a decorator."""
    if callback not in _subscribers:
        _subscribers.append(callback)
    return callback


def unsubscribe(callback: Subscriber) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


async def publish(name: str, **payload: Any) -> DispatchEvent:
    """Fan an event out to subscribers and the configured webhook."""
    event = DispatchEvent(name=name, payload=payload)
    for callback in list(_subscribers):
        try:
            await callback(event)
        except Exception as e:
            logger.error("Dispatch hook %s failed for %s: %s", getattr(callback, "__name__", callback), name, e)

    if settings.DISPATCH_WEBHOOK_URL:
        task = asyncio.create_task(forward_to_webhook(event))
        _pending_webhooks.add(task)
        task.add_done_callback(_webhook_done)
    return event


def _webhook_done(task: asyncio.Task) -> None:
    _pending_webhooks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Webhook task failed: %s", exc)


async def drain_webhooks(timeout: float | None = None) -> None:
    """Wait for in-flight webhook POSTs; whatever is still running after timeout is cancelled."""
    if not _pending_webhooks:
        return
    _, still_running = await asyncio.wait(set(_pending_webhooks), timeout=timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        await asyncio.gather(*still_running, return_exceptions=True)
        logger.warning("Cancelled %s undelivered webhook(s)", len(still_running))


async def forward_to_webhook(event: DispatchEvent) -> bool:
    """POST the event to DISPATCH_WEBHOOK_URL. Returns True on a 2xx response."""
    try:
        async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
            resp = await client.post(settings.DISPATCH_WEBHOOK_URL, json=event.to_json())
            if resp.is_success:
                logger.info("Webhook delivered: event=%s", event.name)
                return True
            logger.warning(
                "Webhook rejected: event=%s, status=%s, body=%s",
                event.name, resp.status_code, resp.text[:200],
            )
            return False
    except httpx.HTTPError as e:
        logger.error("Webhook error: event=%s, error=%s", event.name, str(e))
        return False


# ── In-app notifications ───────────────────────────────────

def notify_driver(
    db: AsyncSession,
    driver_id: uuid.UUID,
    title: str,
    message: str,
    kind: str = "SYSTEM",
    related_id: uuid.UUID | None = None,
) -> Notification:
    """Stage a driver notification in the caller's transaction."""
    note = Notification(
        recipient_driver_id=driver_id,
        audience="DRIVER",
        title=title,
        message=message,
        kind=kind,
        related_id=related_id,
    )
    db.add(note)
    return note


def notify_logistics(
    db: AsyncSession,
    center: str,
    title: str,
    message: str,
    kind: str = "ORDER_UPDATE",
    related_id: uuid.UUID | None = None,
) -> Notification:
    """Stage a notification for logistics officers of one center."""
    note = Notification(
        audience="LOGISTICS",
        center=center,
        title=title,
        message=message,
        kind=kind,
        related_id=related_id,
    )
    db.add(note)
    return note
