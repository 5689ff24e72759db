"""Vehicle ORM model — fleet units stationed at a distribution center."""

import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Enum as SaEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base, utcnow_naive
from models.order import CENTERS


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vehicle_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    license_plate: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    vehicle_type: Mapped[str] = mapped_column(
        SaEnum("VAN", "TRUCK", "CAR", "MOTORCYCLE", "OTHER", name="vehicle_type"),
        default="VAN",
    )
    center: Mapped[str] = mapped_column(SaEnum(*CENTERS, name="distribution_center"), nullable=False)
    active_status: Mapped[str] = mapped_column(
        SaEnum("ACTIVE", "INACTIVE", "UNDER_MAINTENANCE", name="vehicle_status"),
        default="ACTIVE",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive, onupdate=utcnow_naive)

    @property
    def is_eligible(self) -> bool:
        return self.active_status == "ACTIVE"
