"""Order, OrderItem and OrderEvent ORM models — dispatch pipeline."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, Text, JSON, Enum as SaEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from db.database import Base, utcnow_naive

CENTERS = ("NORTH", "SOUTH", "EAST", "WEST", "CENTRAL")

ORDER_STATUSES = (
    "PENDING", "READY_FOR_DISPATCH", "ASSIGNED", "IN_TRANSIT",
    "DELIVERED", "FAILED", "CANCELLED",
)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    order_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    total_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    priority: Mapped[str] = mapped_column(
        SaEnum("NORMAL", "HIGH", name="order_priority"),
        default="NORMAL",
    )
    delivery_center: Mapped[str] = mapped_column(SaEnum(*CENTERS, name="distribution_center"), nullable=False)
    status: Mapped[str] = mapped_column(SaEnum(*ORDER_STATUSES, name="order_status"), default="PENDING")

    # Inventory hand-off
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_by: Mapped[uuid.UUID | None] = mapped_column()

    # Timestamps
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive, onupdate=utcnow_naive)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    items = relationship("OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan")
    events = relationship("OrderEvent", back_populates="order", lazy="selectin", order_by="OrderEvent.id")

    @validates("delivery_center")
    def _freeze_center(self, key, value):
        if self.delivery_center is not None and value != self.delivery_center:
            raise ValueError(f"Order {self.order_code}: delivery_center is immutable")
        return value


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderEvent(Base):
    __tablename__ = "order_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    from_status: Mapped[str | None] = mapped_column(SaEnum(*ORDER_STATUSES, name="order_status"))
    to_status: Mapped[str] = mapped_column(SaEnum(*ORDER_STATUSES, name="order_status"), nullable=False)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)  # USER, DRIVER, SYSTEM, INVENTORY
    actor_id: Mapped[uuid.UUID | None] = mapped_column()
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow_naive)

    # Relationships
    order = relationship("Order", back_populates="events")
