"""Driver ORM model — delivery staff bound to a distribution center."""

import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Text, Enum as SaEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base, utcnow_naive
from models.order import CENTERS


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    license_number: Mapped[str | None] = mapped_column(String(50))
    center: Mapped[str] = mapped_column(SaEnum(*CENTERS, name="distribution_center"), nullable=False)
    approval_status: Mapped[str] = mapped_column(
        SaEnum("PENDING", "APPROVED", "REJECTED", name="driver_approval_status"),
        default="PENDING",
    )
    active_status: Mapped[str] = mapped_column(
        SaEnum("ACTIVE", "INACTIVE", name="driver_active_status"),
        default="ACTIVE",
    )

    # Approval review
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    approved_by: Mapped[uuid.UUID | None] = mapped_column()
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive, onupdate=utcnow_naive)

    @property
    def is_eligible(self) -> bool:
        return self.approval_status == "APPROVED" and self.active_status == "ACTIVE"
