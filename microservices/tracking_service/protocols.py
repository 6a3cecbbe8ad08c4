"""
Tracking Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, List, Optional, Protocol, runtime_checkable
from datetime import timedelta

# Import only models (no I/O dependencies)
from .models import DeliveryPartner, Location, Order, OrderStatus


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class TrackingServiceError(Exception):
    """Base exception for tracking service errors"""
    error_code = "TRACKING_ERROR"


class InvalidTransition(TrackingServiceError):
    """Status change not allowed by the transition table or the acting role"""
    error_code = "INVALID_TRANSITION"

    def __init__(self, current_status: OrderStatus, target_status: OrderStatus, reason: str = ""):
        self.current_status = OrderStatus(current_status)
        self.target_status = OrderStatus(target_status)
        self.reason = reason
        message = f"Cannot transition from {self.current_status.value} to {self.target_status.value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PartnerUnavailable(TrackingServiceError):
    """Partner is offline, unknown, or already delivering another order"""
    error_code = "PARTNER_UNAVAILABLE"


class InvalidLocation(TrackingServiceError):
    """Ping with out-of-range coordinates or an out-of-order timestamp"""
    error_code = "INVALID_LOCATION"


class StaleWrite(TrackingServiceError):
    """Expected version did not match the stored version"""
    error_code = "STALE_WRITE"


class Conflict(TrackingServiceError):
    """Write kept losing the version race after the retry bound"""
    error_code = "CONFLICT"


class EstimateUnavailable(TrackingServiceError):
    """ETA estimator failed or timed out"""
    error_code = "ESTIMATE_UNAVAILABLE"


class OrderNotFound(TrackingServiceError):
    """Order not found error"""
    error_code = "ORDER_NOT_FOUND"


class PartnerNotFound(TrackingServiceError):
    """Delivery partner not found error"""
    error_code = "PARTNER_NOT_FOUND"


class OrderValidationError(TrackingServiceError):
    """Order intake validation error"""
    error_code = "ORDER_VALIDATION_ERROR"


class DuplicateRecordError(TrackingServiceError):
    """Order or partner ID already taken"""
    error_code = "DUPLICATE_RECORD"


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class TrackingRepositoryProtocol(Protocol):
    """
    Interface for the Order/Partner repository.

    Writes are compare-and-swap on the record version: the stored version
    must equal the expected one or StaleWrite is raised and nothing is
    written. A successful write stores the record with version + 1 and
    returns it. Implementations never retry.
    """

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        ...

    async def get_partner(self, partner_id: str) -> Optional[DeliveryPartner]:
        """Get partner by ID"""
        ...

    async def create_order(self, order: Order) -> Order:
        """Insert a new order"""
        ...

    async def create_partner(self, partner: DeliveryPartner) -> DeliveryPartner:
        """Insert a new partner"""
        ...

    async def update_order(self, order: Order, expected_version: int) -> Order:
        """CAS write of one order"""
        ...

    async def update_partner(self, partner: DeliveryPartner, expected_version: int) -> DeliveryPartner:
        """CAS write of one partner"""
        ...

    async def update_order_and_partner(
        self,
        order: Order,
        expected_order_version: int,
        partner: DeliveryPartner,
        expected_partner_version: int,
    ) -> tuple:
        """CAS write of an order and a partner together; both or neither"""
        ...

    async def find_active_by_partner(self, partner_id: str) -> Optional[Order]:
        """Order the partner is currently delivering"""
        ...

    async def find_pending_by_vendor(self, vendor_id: str) -> List[Order]:
        """Orders of a vendor still waiting for acceptance"""
        ...

    async def list_orders_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        ...

    async def list_orders_by_vendor(self, vendor_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        ...

    async def list_orders_by_status(self, status: OrderStatus, limit: int = 50, offset: int = 0) -> List[Order]:
        ...

    async def list_partners(self, online_only: bool = False) -> List[DeliveryPartner]:
        ...


# ============================================================================
# Collaborator Protocols
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus"""

    async def publish_event(self, event: Any) -> None:
        """Publish an event"""
        ...


@runtime_checkable
class EtaEstimatorProtocol(Protocol):
    """Interface for the external ETA estimator"""

    async def estimate(
        self,
        pickup_location: Location,
        delivery_location: Location,
        current_location: Optional[Location],
        status: OrderStatus,
    ) -> timedelta:
        """Remaining time to delivery; raises EstimateUnavailable"""
        ...
