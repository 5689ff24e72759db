"""
Verification & Proof — evidence capture and the reviewer's sign-off flag.

Neither operation touches delivery status, and neither touches the other:
an officer can look at the photo and signature first and toggle
verification later. A delivery without proof simply has none yet.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from db.database import utcnow_naive
from services import dispatch_events
from services.delivery_lifecycle import get_delivery
from services.errors import ValidationFailed

logger = logging.getLogger(__name__)


async def attach_proof(
    db: AsyncSession,
    delivery_id: uuid.UUID,
    photo_url: str | None = None,
    signature_url: str | None = None,
) -> None:
    """Store photo and/or signature references. Only supplied fields are overwritten."""
    if not photo_url and not signature_url:
        raise ValidationFailed("photo_url or signature_url is required", delivery_id=delivery_id)

    delivery = await get_delivery(db, delivery_id)
    if photo_url:
        delivery.proof_photo_url = photo_url
    if signature_url:
        delivery.proof_signature_url = signature_url
    delivery.proof_captured_at = utcnow_naive()
    await db.commit()
    logger.info(
        "Proof attached to delivery %s (photo=%s, signature=%s)",
        delivery.delivery_code, bool(photo_url), bool(signature_url),
    )


async def set_verification(
    db: AsyncSession,
    delivery_id: uuid.UUID,
    verified: bool,
    reviewer_id: uuid.UUID | None = None,
) -> None:
    delivery = await get_delivery(db, delivery_id)
    delivery.verification_status = bool(verified)
    delivery.verified_by = reviewer_id if verified else None
    delivery.verified_at = utcnow_naive() if verified else None
    await db.commit()
    logger.info("Delivery %s verification -> %s (reviewer=%s)", delivery.delivery_code, verified, reviewer_id)

    await dispatch_events.publish(
        dispatch_events.DELIVERY_VERIFICATION_CHANGED,
        delivery_id=delivery.id,
        delivery_code=delivery.delivery_code,
        verified=bool(verified),
        status=delivery.status,
    )
