"""Delivery, DeliveryTimelineEvent and DeliveryPosition ORM models.

A Delivery binds one order to one driver and one vehicle. At most one
non-terminal delivery may reference a given driver, vehicle or order; the
partial unique indexes below enforce that in the store itself.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    String, Integer, Float, Boolean, DateTime, ForeignKey, Text, Index,
    UniqueConstraint, Enum as SaEnum, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from db.database import Base, utcnow_naive
from models.order import CENTERS

DELIVERY_STATUSES = ("ASSIGNED", "PICKED_UP", "IN_TRANSIT", "DELIVERED", "FAILED")
ACTIVE_DELIVERY_STATUSES = ("ASSIGNED", "PICKED_UP", "IN_TRANSIT")
TERMINAL_DELIVERY_STATUSES = ("DELIVERED", "FAILED")

_ACTIVE_WHERE = text("status IN ('ASSIGNED', 'PICKED_UP', 'IN_TRANSIT')")


def _active_unique_index(name: str, column: str) -> Index:
    return Index(
        name, column, unique=True,
        postgresql_where=_ACTIVE_WHERE,
        sqlite_where=_ACTIVE_WHERE,
    )


class Delivery(Base):
    __tablename__ = "deliveries"
    __table_args__ = (
        _active_unique_index("uq_deliveries_active_driver", "driver_id"),
        _active_unique_index("uq_deliveries_active_vehicle", "vehicle_id"),
        _active_unique_index("uq_deliveries_active_order", "order_id"),
        Index("ix_deliveries_center_status", "center", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    delivery_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    driver_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("drivers.id"), nullable=False)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False)
    assigned_by: Mapped[uuid.UUID] = mapped_column(nullable=False)

    center: Mapped[str] = mapped_column(SaEnum(*CENTERS, name="distribution_center"), nullable=False)
    status: Mapped[str] = mapped_column(SaEnum(*DELIVERY_STATUSES, name="delivery_status"), default="ASSIGNED")
    notes: Mapped[str | None] = mapped_column(Text)

    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Live tracking
    last_lat: Mapped[float | None] = mapped_column(Float)
    last_lng: Mapped[float | None] = mapped_column(Float)
    last_speed: Mapped[float | None] = mapped_column(Float)
    last_heading: Mapped[float | None] = mapped_column(Float)
    last_position_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_sampled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Verification & proof
    verification_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_by: Mapped[uuid.UUID | None] = mapped_column()
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    proof_photo_url: Mapped[str | None] = mapped_column(Text)
    proof_signature_url: Mapped[str | None] = mapped_column(Text)
    proof_captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive, onupdate=utcnow_naive)

    # Relationships (denormalised read projection)
    order = relationship("Order", lazy="selectin")
    driver = relationship("Driver", lazy="selectin")
    vehicle = relationship("Vehicle", lazy="selectin")
    timeline = relationship(
        "DeliveryTimelineEvent",
        back_populates="delivery",
        lazy="selectin",
        order_by="DeliveryTimelineEvent.seq",
    )

    @validates("center")
    def _freeze_center(self, key, value):
        if self.center is not None and value != self.center:
            raise ValueError(f"Delivery {self.delivery_code}: center is immutable")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DELIVERY_STATUSES

    @property
    def last_known_position(self) -> dict | None:
        if self.last_position_at is None:
            return None
        return {
            "lat": self.last_lat,
            "lng": self.last_lng,
            "speed": self.last_speed,
            "heading": self.last_heading,
            "timestamp": self.last_position_at,
        }

    @property
    def proof_of_delivery(self) -> dict | None:
        if not (self.proof_photo_url or self.proof_signature_url):
            return None
        return {
            "photo_url": self.proof_photo_url,
            "signature_url": self.proof_signature_url,
            "timestamp": self.proof_captured_at,
        }


class DeliveryTimelineEvent(Base):
    __tablename__ = "delivery_timeline"
    __table_args__ = (UniqueConstraint("delivery_id", "seq", name="uq_delivery_timeline_seq"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    delivery_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("deliveries.id"), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(SaEnum(*DELIVERY_STATUSES, name="delivery_status"), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)

    delivery = relationship("Delivery", back_populates="timeline")


class DeliveryPosition(Base):
    __tablename__ = "delivery_positions"
    __table_args__ = (Index("ix_delivery_positions_recent", "delivery_id", "recorded_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    delivery_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("deliveries.id"), nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    speed: Mapped[float | None] = mapped_column(Float)
    heading: Mapped[float | None] = mapped_column(Float)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
