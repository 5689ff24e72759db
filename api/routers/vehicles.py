"""Vehicle directory endpoints."""

import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import VehicleCreate, VehicleResponse, VehicleStatusUpdate
from services import resource_directory

router = APIRouter()


@router.post("/", response_model=VehicleResponse, status_code=201)
async def create_vehicle(data: VehicleCreate, db: AsyncSession = Depends(get_db)):
    return await resource_directory.create_vehicle(db, data)


@router.get("/", response_model=list[VehicleResponse])
async def list_vehicles(
    center: str | None = None,
    active_status: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await resource_directory.list_vehicles(
        db, center=center, active_status=active_status, search=search,
    )


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(vehicle_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await resource_directory.get_vehicle(db, vehicle_id)


@router.patch("/{vehicle_id}/status", response_model=VehicleResponse)
async def update_status(
    vehicle_id: uuid.UUID,
    data: VehicleStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """ACTIVE / INACTIVE / UNDER_MAINTENANCE. Only ACTIVE vehicles can be assigned."""
    return await resource_directory.set_vehicle_status(db, vehicle_id, data.status.value)
