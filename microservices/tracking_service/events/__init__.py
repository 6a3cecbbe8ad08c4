"""
Tracking Service Events Module

Exports all event-related functionality for tracking service
"""

from .models import (
    OrderCreatedEvent,
    OrderStatusChangedEvent,
    OrderAssignedEvent,
    OrderDeliveredEvent,
    OrderCancelledEvent,
    PartnerRegisteredEvent,
    PartnerAvailabilityEvent,
)

from .publishers import (
    publish_order_created,
    publish_status_changed,
    publish_order_assigned,
    publish_order_delivered,
    publish_order_cancelled,
    publish_partner_registered,
    publish_partner_availability,
)

__all__ = [
    # Event Models
    "OrderCreatedEvent",
    "OrderStatusChangedEvent",
    "OrderAssignedEvent",
    "OrderDeliveredEvent",
    "OrderCancelledEvent",
    "PartnerRegisteredEvent",
    "PartnerAvailabilityEvent",
    # Publishers
    "publish_order_created",
    "publish_status_changed",
    "publish_order_assigned",
    "publish_order_delivered",
    "publish_order_cancelled",
    "publish_partner_registered",
    "publish_partner_availability",
]
