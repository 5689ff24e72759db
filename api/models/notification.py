"""Notification ORM model — in-app messages for drivers and logistics officers."""

import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Enum as SaEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base, utcnow_naive
from models.order import CENTERS


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    recipient_driver_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("drivers.id"))
    audience: Mapped[str] = mapped_column(SaEnum("DRIVER", "LOGISTICS", name="notification_audience"), nullable=False)
    center: Mapped[str | None] = mapped_column(SaEnum(*CENTERS, name="distribution_center"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(
        SaEnum("ASSIGNMENT", "ALERT", "SYSTEM", "ORDER_UPDATE", name="notification_kind"),
        default="SYSTEM",
    )
    related_id: Mapped[uuid.UUID | None] = mapped_column()
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
