"""Order intake endpoints — create, read, mark ready for dispatch, cancel, fail."""

import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import OrderCreate, OrderResponse, OrderActorRequest, OrderFailRequest
from services import order_pipeline

router = APIRouter()


@router.post("/", response_model=OrderResponse, status_code=201)
async def create_order(data: OrderCreate, db: AsyncSession = Depends(get_db)):
    """Create a PENDING order. Inventory marks it ready once stock clears."""
    return await order_pipeline.create_order(db, data)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await order_pipeline.get_order(db, order_id)


@router.post("/{order_id}/ready", response_model=OrderResponse)
async def mark_ready(
    order_id: uuid.UUID,
    data: OrderActorRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Inventory hook: stock is cleared, the order joins the dispatch queue."""
    actor_id = data.actor_id if data else None
    return await order_pipeline.mark_ready_for_dispatch(db, order_id, actor_id=actor_id)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    data: OrderActorRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    actor_id = data.actor_id if data else None
    return await order_pipeline.cancel_order(db, order_id, actor_id=actor_id)


@router.post("/{order_id}/fail", response_model=OrderResponse)
async def fail_order(
    order_id: uuid.UUID,
    data: OrderFailRequest,
    db: AsyncSession = Depends(get_db),
):
    """Give up on a dispatch-ready order that was never assigned."""
    return await order_pipeline.fail_unassigned_order(db, order_id, data.reason, actor_id=data.actor_id)
