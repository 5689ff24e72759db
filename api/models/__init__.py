from models.order import Order, OrderItem, OrderEvent
from models.driver import Driver
from models.vehicle import Vehicle
from models.delivery import Delivery, DeliveryTimelineEvent, DeliveryPosition
from models.notification import Notification

__all__ = [
    "Order", "OrderItem", "OrderEvent",
    "Driver", "Vehicle",
    "Delivery", "DeliveryTimelineEvent", "DeliveryPosition",
    "Notification",
]
