"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated
from pydantic import BaseModel, BeforeValidator, Field


# ── Enums ──────────────────────────────────────────────────

class Center(str, Enum):
    NORTH = "NORTH"
    SOUTH = "SOUTH"
    EAST = "EAST"
    WEST = "WEST"
    CENTRAL = "CENTRAL"


class Priority(str, Enum):
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    ASSIGNED = "ASSIGNED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class DeliveryStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DriverActiveStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class VehicleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"


class VehicleType(str, Enum):
    VAN = "VAN"
    TRUCK = "TRUCK"
    CAR = "CAR"
    MOTORCYCLE = "MOTORCYCLE"
    OTHER = "OTHER"


# ── Normalisers ────────────────────────────────────────────

# Older clients send "OnTheWay" for the in-transit state.
_DELIVERY_STATUS_ALIASES = {
    "ASSIGNED": "ASSIGNED",
    "PICKEDUP": "PICKED_UP",
    "INTRANSIT": "IN_TRANSIT",
    "ONTHEWAY": "IN_TRANSIT",
    "DELIVERED": "DELIVERED",
    "FAILED": "FAILED",
}


def normalize_center(value):
    """'north', 'North Center' and 'NORTH' all mean Center.NORTH."""
    if not isinstance(value, str):
        return value
    cleaned = re.sub(r"\s+center$", "", value.strip(), flags=re.IGNORECASE)
    return cleaned.upper()


def normalize_delivery_status(value):
    if not isinstance(value, str):
        return value
    key = re.sub(r"[^A-Za-z]", "", value).upper()
    return _DELIVERY_STATUS_ALIASES.get(key, value)


def normalize_upper(value):
    return value.strip().upper() if isinstance(value, str) else value


CenterField = Annotated[Center, BeforeValidator(normalize_center)]
DeliveryStatusField = Annotated[DeliveryStatus, BeforeValidator(normalize_delivery_status)]
PriorityField = Annotated[Priority, BeforeValidator(normalize_upper)]


# ── Order Schemas ──────────────────────────────────────────

class OrderItemCreate(BaseModel):
    product_ref: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    delivery_address: str = Field(..., min_length=1)
    items: list[OrderItemCreate] = Field(..., min_length=1)
    priority: PriorityField = Priority.NORMAL
    delivery_center: CenterField


class OrderItemResponse(BaseModel):
    product_ref: str
    quantity: int
    unit_price: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_code: str
    customer_name: str
    delivery_address: str
    items: list[OrderItemResponse]
    total_amount: float
    priority: str
    delivery_center: str
    status: str
    order_date: datetime
    ready_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None

    class Config:
        from_attributes = True


class OrderActorRequest(BaseModel):
    """Body for ready / cancel; the actor comes from the session provider."""
    actor_id: uuid.UUID | None = None


class OrderFailRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    actor_id: uuid.UUID | None = None


class OrderSummary(BaseModel):
    id: uuid.UUID
    order_code: str
    customer_name: str
    delivery_address: str
    priority: str
    status: str
    total_amount: float

    class Config:
        from_attributes = True


# ── Driver Schemas ─────────────────────────────────────────

class DriverCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(..., min_length=7, max_length=20)
    license_number: str | None = Field(None, max_length=50)
    center: CenterField


class DriverResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str
    phone: str
    license_number: str | None
    center: str
    approval_status: str
    active_status: str
    rejection_reason: str | None
    approved_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class DriverApprovalUpdate(BaseModel):
    status: ApprovalStatus
    note: str | None = None
    reviewer_id: uuid.UUID | None = None


class DriverActiveUpdate(BaseModel):
    status: DriverActiveStatus


class DriverSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str
    phone: str

    class Config:
        from_attributes = True


# ── Vehicle Schemas ────────────────────────────────────────

class VehicleCreate(BaseModel):
    vehicle_code: str = Field(..., min_length=1, max_length=30)
    model: str = Field(..., min_length=1, max_length=100)
    license_plate: str = Field(..., min_length=2, max_length=30)
    vehicle_type: VehicleType = VehicleType.VAN
    center: CenterField


class VehicleResponse(BaseModel):
    id: uuid.UUID
    vehicle_code: str
    model: str
    license_plate: str
    vehicle_type: str
    center: str
    active_status: str
    created_at: datetime

    class Config:
        from_attributes = True


class VehicleStatusUpdate(BaseModel):
    status: VehicleStatus


class VehicleSummary(BaseModel):
    id: uuid.UUID
    vehicle_code: str
    model: str
    license_plate: str
    vehicle_type: str

    class Config:
        from_attributes = True


# ── Notification Schemas ───────────────────────────────────

class NotificationResponse(BaseModel):
    id: uuid.UUID
    recipient_driver_id: uuid.UUID | None
    audience: str
    center: str | None
    title: str
    message: str
    kind: str
    related_id: uuid.UUID | None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
