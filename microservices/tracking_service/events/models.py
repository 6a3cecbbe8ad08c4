"""
Tracking Service Event Models

Pydantic models for events published by tracking service
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderCreatedEvent(BaseModel):
    """Event published when an order is placed"""
    order_id: str
    customer_id: str
    vendor_id: str
    total_amount: float
    item_count: int
    timestamp: datetime = Field(default_factory=_now)


class OrderStatusChangedEvent(BaseModel):
    """Event published after every committed status transition"""
    order_id: str
    customer_id: str
    vendor_id: str
    partner_id: Optional[str] = None
    old_status: str
    new_status: str
    status_label: str
    message: str
    acting_role: str
    estimated_delivery_time: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=_now)


class OrderAssignedEvent(BaseModel):
    """Event published when a partner is assigned to an order"""
    order_id: str
    partner_id: str
    vendor_id: str
    customer_id: str
    timestamp: datetime = Field(default_factory=_now)


class OrderDeliveredEvent(BaseModel):
    """Event published when an order is delivered"""
    order_id: str
    partner_id: Optional[str] = None
    customer_id: str
    vendor_id: str
    delivered_at: datetime
    timestamp: datetime = Field(default_factory=_now)


class OrderCancelledEvent(BaseModel):
    """Event published when an order is cancelled"""
    order_id: str
    customer_id: str
    vendor_id: str
    previous_status: str
    partner_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class PartnerRegisteredEvent(BaseModel):
    """Event published when a delivery partner registers"""
    partner_id: str
    name: str
    vehicle: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class PartnerAvailabilityEvent(BaseModel):
    """Event published when a partner goes online or offline"""
    partner_id: str
    is_online: bool
    current_order_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)
