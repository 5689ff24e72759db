"""Schemas for assignment, delivery tracking and proof-of-delivery endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from schemas import (
    DeliveryStatusField, OrderSummary, DriverSummary, VehicleSummary,
)


class AssignmentCreate(BaseModel):
    order_id: uuid.UUID
    driver_id: uuid.UUID
    vehicle_id: uuid.UUID
    requesting_user_id: uuid.UUID
    notes: str | None = Field(None, max_length=2000)


class TimelineEventResponse(BaseModel):
    seq: int
    status: str
    timestamp: datetime = Field(validation_alias="created_at")
    note: str | None
    location: str | None

    class Config:
        from_attributes = True


class PositionResponse(BaseModel):
    lat: float
    lng: float
    speed: float | None = None
    heading: float | None = None
    timestamp: datetime


class PositionPingResponse(BaseModel):
    lat: float
    lng: float
    speed: float | None
    heading: float | None
    recorded_at: datetime

    class Config:
        from_attributes = True


class ProofOfDeliveryResponse(BaseModel):
    photo_url: str | None = None
    signature_url: str | None = None
    timestamp: datetime | None = None


class DeliveryResponse(BaseModel):
    id: uuid.UUID
    delivery_code: str
    status: str
    center: str
    order: OrderSummary
    driver: DriverSummary
    vehicle: VehicleSummary
    assigned_by: uuid.UUID
    assigned_at: datetime
    completed_at: datetime | None
    notes: str | None
    timeline: list[TimelineEventResponse]
    last_known_position: PositionResponse | None
    verification_status: bool
    proof_of_delivery: ProofOfDeliveryResponse | None

    class Config:
        from_attributes = True


class DeliveryPage(BaseModel):
    data: list[DeliveryResponse]
    total: int
    page: int
    pages: int


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatusField
    note: str | None = Field(None, max_length=2000)
    location: str | None = Field(None, max_length=255)
    actor_id: uuid.UUID | None = None


class PositionUpdate(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    speed: float | None = Field(None, ge=0)
    heading: float | None = Field(None, ge=0, lt=360)


class VerificationUpdate(BaseModel):
    verified: bool
    reviewer_id: uuid.UUID | None = None


class ProofAttach(BaseModel):
    photo_url: str | None = Field(None, min_length=1, max_length=2048)
    signature_url: str | None = Field(None, min_length=1, max_length=2048)

    @model_validator(mode="after")
    def _require_one(self):
        if not self.photo_url and not self.signature_url:
            raise ValueError("photo_url or signature_url is required")
        return self


class Ack(BaseModel):
    ok: bool = True
    delivery_id: uuid.UUID


class DispatchStats(BaseModel):
    total: int
    today: int
    delivered: int
    failed: int
    in_transit: int
    drivers: int
    vehicles: int
