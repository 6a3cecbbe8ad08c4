"""
Tracking Service Data Models

Pydantic models for delivery orders, delivery partners, location pings,
tracking updates and the events pushed to order viewers.
"""

from pydantic import BaseModel, Field, computed_field, field_validator
from typing import Dict, Optional, List, Literal, Union
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    ASSIGNED = "assigned"
    PICKUP = "pickup"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Role(str, Enum):
    """Acting role of the caller"""
    CUSTOMER = "customer"
    VENDOR = "vendor"
    PARTNER = "partner"


# Display label per status, as shown on the tracking page
STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.ACCEPTED: "Accepted",
    OrderStatus.ASSIGNED: "Delivery Assigned",
    OrderStatus.PICKUP: "Picked Up",
    OrderStatus.IN_TRANSIT: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}


def status_label(status: OrderStatus) -> str:
    return STATUS_LABELS[OrderStatus(status)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Core Models

class Location(BaseModel):
    """Geographic position reported at a point in time"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: datetime
    accuracy: Optional[float] = Field(None, ge=0)  # metres
    heading: Optional[float] = Field(None, ge=0, le=360)  # degrees
    speed: Optional[float] = Field(None, ge=0)  # m/s

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)


class OrderItem(BaseModel):
    """Line item of an order"""
    item_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)


class TrackingUpdate(BaseModel):
    """One entry of an order's tracking history"""
    update_id: str
    order_id: str
    status: OrderStatus
    location: Optional[Location] = None
    timestamp: datetime
    message: str


class Order(BaseModel):
    """Core delivery order model"""
    order_id: str
    customer_id: str
    vendor_id: str
    partner_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem]
    total_amount: Decimal
    pickup_location: Location
    delivery_location: Location
    created_at: datetime
    updated_at: datetime
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    tracking_updates: List[TrackingUpdate] = []
    version: int = 0

    @computed_field
    @property
    def status_label(self) -> str:
        return status_label(self.status)


class DeliveryPartner(BaseModel):
    """Delivery partner profile and live state"""
    partner_id: str
    name: str
    phone: str
    vehicle: Optional[str] = None
    is_online: bool = False
    current_location: Optional[Location] = None
    current_order_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = 0


# Request Models

class OrderCreateRequest(BaseModel):
    """Create order request"""
    order_id: Optional[str] = Field(None, description="Client supplied order ID")
    customer_id: str = Field(..., min_length=1, description="Customer placing the order")
    vendor_id: str = Field(..., min_length=1, description="Vendor fulfilling the order")
    items: List[OrderItem] = Field(..., min_length=1, description="Order items")
    total_amount: Decimal = Field(..., ge=0, description="Sum of quantity x price")
    pickup_location: Location
    delivery_location: Location


class TransitionRequest(BaseModel):
    """Order status transition request"""
    target_status: OrderStatus
    acting_role: Role
    partner_id: Optional[str] = Field(None, description="Partner to assign (required for assigned)")
    note: Optional[str] = Field(None, max_length=500, description="Appended to the tracking message")


class LocationPing(BaseModel):
    """
    Raw GPS ping from a delivery partner.

    Coordinates are unconstrained here; range checks happen in ingest and
    an out-of-range ping is answered accepted=False rather than 422.
    """
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None


class PartnerCreateRequest(BaseModel):
    """Register delivery partner request"""
    partner_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)
    vehicle: Optional[str] = Field(None, max_length=100)
    is_online: bool = False


class AvailabilityRequest(BaseModel):
    """Partner online/offline toggle"""
    is_online: bool


# Response Models

class LocationReportResponse(BaseModel):
    """Outcome of a location ping"""
    accepted: bool
    reason: Optional[str] = None
    partner_id: str
    location: Optional[Location] = None


class OrderListResponse(BaseModel):
    """Order list response"""
    orders: List[Order]
    count: int


class PartnerListResponse(BaseModel):
    """Partner list response"""
    partners: List[DeliveryPartner]
    count: int


class VendorStats(BaseModel):
    """Order counts shown on the vendor dashboard"""
    vendor_id: str
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    total: int = 0


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str]
    subscribers: int = 0


class ServiceInfo(BaseModel):
    """Service information"""
    service: str
    version: str
    description: str
    capabilities: List[str]


# Viewer Events

class StatusChanged(BaseModel):
    """Pushed to viewers after every committed transition"""
    type: Literal["status_changed"] = "status_changed"
    order: Order
    tracking_update: TrackingUpdate


class LocationChanged(BaseModel):
    """Pushed to viewers of the order the partner is delivering"""
    type: Literal["location_changed"] = "location_changed"
    order_id: str
    partner_id: str
    location: Location


ViewerEvent = Union[StatusChanged, LocationChanged]
