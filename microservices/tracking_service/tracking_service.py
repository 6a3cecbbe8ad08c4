"""
Tracking Service Business Logic

Orchestrates order intake, status transitions, partner availability,
location ingest and viewer subscriptions on top of the repository.

Every read-check-write runs as a compare-and-swap on record versions;
StaleWrite is retried from a fresh read up to max_write_retries times and
then surfaces as Conflict.
"""

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from . import state_machine
from .events.publishers import (
    publish_order_created,
    publish_partner_availability,
    publish_partner_registered,
    publish_status_changed,
)
from .location_ingest import LocationIngest
from .models import (
    DeliveryPartner,
    LocationPing,
    LocationReportResponse,
    Order,
    OrderCreateRequest,
    OrderStatus,
    PartnerCreateRequest,
    Role,
    TrackingUpdate,
    VendorStats,
    utc_now,
)
from .protocols import (
    Conflict,
    EstimateUnavailable,
    EtaEstimatorProtocol,
    EventBusProtocol,
    InvalidLocation,
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
    PartnerNotFound,
    PartnerUnavailable,
    StaleWrite,
    TrackingRepositoryProtocol,
)
from .subscription_registry import SubscriptionRegistry, ViewerChannel

logger = logging.getLogger(__name__)

IN_PROGRESS_STATUSES = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.ASSIGNED,
    OrderStatus.PICKUP,
    OrderStatus.IN_TRANSIT,
})

STATS_PAGE_SIZE = 500


class TrackingService:
    """Tracking service core business logic"""

    def __init__(
        self,
        repository: TrackingRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        eta_estimator: Optional[EtaEstimatorProtocol] = None,
        registry: Optional[SubscriptionRegistry] = None,
        max_write_retries: int = 3,
        eta_timeout_seconds: float = 2.0,
    ):
        """
        Initialize tracking service with injected dependencies

        Args:
            repository: Repository for data access
            event_bus: Optional event bus for platform events
            eta_estimator: Optional ETA estimator; without one estimates stay unknown
            registry: Subscription registry (a fresh one by default)
            max_write_retries: Attempts per CAS write before Conflict
            eta_timeout_seconds: Upper bound for one ETA request
        """
        self.repository = repository
        self.event_bus = event_bus
        self.eta_estimator = eta_estimator
        self.registry = registry or SubscriptionRegistry()
        self.max_write_retries = max(1, max_write_retries)
        self.eta_timeout_seconds = eta_timeout_seconds
        self.ingest = LocationIngest(repository, self.registry, self.max_write_retries)

        logger.info("TrackingService initialized with dependency injection")

    async def initialize(self):
        """Prepare the store (schema creation for the PostgreSQL repository)"""
        initialize = getattr(self.repository, "initialize", None)
        if initialize is not None:
            await initialize()
        logger.info("TrackingService initialized")

    async def check_store(self) -> Optional[bool]:
        """Store health; None when the store has no health check (in-memory)"""
        health_check = getattr(self.repository, "health_check", None)
        if health_check is None:
            return None
        return await health_check()

    async def close(self):
        self.registry.close_all()
        for resource in (self.eta_estimator, self.repository):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()

    # ====================
    # Orders
    # ====================

    async def create_order(self, request: OrderCreateRequest) -> Order:
        """Place a new order in pending status"""
        expected_total = sum(
            (item.price * item.quantity for item in request.items), Decimal("0")
        )
        if expected_total != request.total_amount:
            raise OrderValidationError(
                f"total_amount {request.total_amount} does not match items total {expected_total}"
            )

        now = utc_now()
        order = Order(
            order_id=request.order_id or f"ord_{uuid.uuid4().hex[:12]}",
            customer_id=request.customer_id,
            vendor_id=request.vendor_id,
            status=OrderStatus.PENDING,
            items=request.items,
            total_amount=request.total_amount,
            pickup_location=request.pickup_location,
            delivery_location=request.delivery_location,
            created_at=now,
            updated_at=now,
        )
        order = await self.repository.create_order(order)
        logger.info(f"Order {order.order_id} placed by customer {order.customer_id} at vendor {order.vendor_id}")

        await publish_order_created(self.event_bus, order)
        return order

    async def get_order(self, order_id: str) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFound(f"Order not found: {order_id}")
        return order

    async def list_customer_orders(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        return await self.repository.list_orders_by_customer(customer_id, limit=limit, offset=offset)

    async def list_vendor_orders(
        self, vendor_id: str, pending_only: bool = False, limit: int = 50, offset: int = 0
    ) -> List[Order]:
        if pending_only:
            return await self.repository.find_pending_by_vendor(vendor_id)
        return await self.repository.list_orders_by_vendor(vendor_id, limit=limit, offset=offset)

    async def list_available_orders(self, limit: int = 50, offset: int = 0) -> List[Order]:
        """Accepted orders still waiting for a delivery partner"""
        return await self.repository.list_orders_by_status(OrderStatus.ACCEPTED, limit=limit, offset=offset)

    async def get_vendor_stats(self, vendor_id: str) -> VendorStats:
        stats = VendorStats(vendor_id=vendor_id)
        offset = 0
        while True:
            page = await self.repository.list_orders_by_vendor(
                vendor_id, limit=STATS_PAGE_SIZE, offset=offset
            )
            for order in page:
                if order.status == OrderStatus.PENDING:
                    stats.pending += 1
                elif order.status in IN_PROGRESS_STATUSES:
                    stats.in_progress += 1
                elif order.status == OrderStatus.DELIVERED:
                    stats.completed += 1
                elif order.status == OrderStatus.CANCELLED:
                    stats.cancelled += 1
            stats.total += len(page)
            if len(page) < STATS_PAGE_SIZE:
                return stats
            offset += STATS_PAGE_SIZE

    # ====================
    # Status transitions
    # ====================

    async def transition_order(
        self,
        order_id: str,
        target_status: OrderStatus,
        acting_role: Role,
        partner_id: Optional[str] = None,
        note: Optional[str] = None,
        acting_user_id: Optional[str] = None,
    ) -> Order:
        """
        Move an order along the state machine.

        Exactly one tracking update is appended per committed transition and
        the order's viewers get one StatusChanged.

        Raises:
            OrderNotFound: unknown order
            InvalidTransition: edge missing or role not allowed (order unchanged)
            PartnerUnavailable: partner offline, unknown or busy
            Conflict: version race lost max_write_retries times
        """
        target = OrderStatus(target_status)
        role = Role(acting_role)

        for attempt in range(1, self.max_write_retries + 1):
            try:
                order, tracking_update, old_status = await self._attempt_transition(
                    order_id, target, role, partner_id, note, acting_user_id
                )
                break
            except StaleWrite as e:
                logger.info(f"Stale write on order {order_id} -> {target.value} (attempt {attempt}): {e}")
        else:
            raise Conflict(
                f"Order {order_id} could not move to {target.value} after {self.max_write_retries} attempts"
            )

        logger.info(
            f"Order {order_id}: {old_status.value} -> {order.status.value} by {role.value}"
            + (f" (partner {order.partner_id})" if order.partner_id else "")
        )
        self.registry.publish_status(order, tracking_update)
        await publish_status_changed(
            self.event_bus, order, old_status, tracking_update, role.value, note=note
        )
        return order

    async def _attempt_transition(
        self,
        order_id: str,
        target: OrderStatus,
        role: Role,
        partner_id: Optional[str],
        note: Optional[str],
        acting_user_id: Optional[str],
    ) -> Tuple[Order, TrackingUpdate, OrderStatus]:
        order = await self.get_order(order_id)
        old_status = order.status

        if target == OrderStatus.ASSIGNED:
            return (*await self._attempt_assignment(order, role, partner_id, note, acting_user_id), old_status)

        state_machine.validate_transition(order, target, role)
        if role == Role.PARTNER and acting_user_id and order.partner_id != acting_user_id:
            raise InvalidTransition(old_status, target, "only the assigned partner may update this order")

        partner = await self.repository.get_partner(order.partner_id) if order.partner_id else None
        updated, tracking_update = state_machine.apply_transition(order, target, partner=partner, note=note)
        if target in state_machine.ETA_STATUSES:
            await self._refresh_estimate(updated, partner)

        if (
            target in state_machine.RELEASE_STATUSES
            and partner is not None
            and partner.current_order_id == order.order_id
        ):
            partner.current_order_id = None
            partner.updated_at = updated.updated_at
            updated, _ = await self.repository.update_order_and_partner(
                updated, order.version, partner, partner.version
            )
            logger.info(f"Partner {partner.partner_id} released from order {order.order_id}")
        else:
            updated = await self.repository.update_order(updated, order.version)

        return updated, tracking_update, old_status

    async def _attempt_assignment(
        self,
        order: Order,
        role: Role,
        partner_id: Optional[str],
        note: Optional[str],
        acting_user_id: Optional[str],
    ) -> Tuple[Order, TrackingUpdate]:
        target = OrderStatus.ASSIGNED
        if role == Role.PARTNER:
            if partner_id is None:
                partner_id = acting_user_id
            elif acting_user_id and partner_id != acting_user_id:
                raise InvalidTransition(order.status, target, "partners may only assign themselves")

        state_machine.validate_transition(order, target, role, partner_id)

        partner = await self.repository.get_partner(partner_id)
        if partner is None:
            raise PartnerUnavailable(f"Partner {partner_id} is unknown")
        if not partner.is_online:
            raise PartnerUnavailable(f"Partner {partner_id} is offline")
        if partner.current_order_id:
            raise PartnerUnavailable(
                f"Partner {partner_id} is already delivering order {partner.current_order_id}"
            )

        updated, tracking_update = state_machine.apply_transition(order, target, partner=partner, note=note)
        await self._refresh_estimate(updated, partner)

        partner.current_order_id = order.order_id
        partner.updated_at = updated.updated_at
        # Availability check and both writes are one CAS on both versions
        updated, _ = await self.repository.update_order_and_partner(
            updated, order.version, partner, partner.version
        )
        return updated, tracking_update

    async def _refresh_estimate(self, order: Order, partner: Optional[DeliveryPartner]):
        """Set estimated_delivery_time from the estimator; unknown on failure"""
        if self.eta_estimator is None:
            return

        try:
            eta = await asyncio.wait_for(
                self.eta_estimator.estimate(
                    order.pickup_location,
                    order.delivery_location,
                    partner.current_location if partner else None,
                    order.status,
                ),
                timeout=self.eta_timeout_seconds,
            )
        except (EstimateUnavailable, asyncio.TimeoutError) as e:
            logger.warning(f"ETA unavailable for order {order.order_id}: {str(e) or 'timeout'}")
            order.estimated_delivery_time = None
            return

        order.estimated_delivery_time = order.updated_at + eta

    # ====================
    # Delivery partners
    # ====================

    async def register_partner(self, request: PartnerCreateRequest) -> DeliveryPartner:
        now = utc_now()
        partner = DeliveryPartner(
            partner_id=request.partner_id or f"dp_{uuid.uuid4().hex[:12]}",
            name=request.name,
            phone=request.phone,
            vehicle=request.vehicle,
            is_online=request.is_online,
            created_at=now,
            updated_at=now,
        )
        partner = await self.repository.create_partner(partner)
        logger.info(f"Partner {partner.partner_id} registered")

        await publish_partner_registered(self.event_bus, partner)
        return partner

    async def get_partner(self, partner_id: str) -> DeliveryPartner:
        partner = await self.repository.get_partner(partner_id)
        if partner is None:
            raise PartnerNotFound(f"Partner not found: {partner_id}")
        return partner

    async def list_partners(self, online_only: bool = False) -> List[DeliveryPartner]:
        return await self.repository.list_partners(online_only=online_only)

    async def get_active_order(self, partner_id: str) -> Optional[Order]:
        await self.get_partner(partner_id)
        return await self.repository.find_active_by_partner(partner_id)

    async def set_availability(self, partner_id: str, is_online: bool) -> DeliveryPartner:
        """Toggle a partner online/offline; offline stops location delivery at once"""
        for attempt in range(1, self.max_write_retries + 1):
            partner = await self.get_partner(partner_id)
            if partner.is_online == is_online:
                return partner

            partner.is_online = is_online
            partner.updated_at = utc_now()
            try:
                partner = await self.repository.update_partner(partner, partner.version)
                break
            except StaleWrite:
                logger.info(f"Stale write on partner {partner_id} availability (attempt {attempt})")
        else:
            raise Conflict(
                f"Availability of partner {partner_id} not stored after {self.max_write_retries} attempts"
            )

        if is_online:
            if partner.current_order_id:
                order = await self.repository.get_order(partner.current_order_id)
                if order is not None:
                    self.registry.track_order(order)
        else:
            self.registry.partner_offline(partner_id)

        logger.info(f"Partner {partner_id} is now {'online' if is_online else 'offline'}")
        await publish_partner_availability(self.event_bus, partner)
        return partner

    # ====================
    # Location ingest
    # ====================

    async def report_location(self, partner_id: str, ping: LocationPing) -> LocationReportResponse:
        """
        Ingest one ping. Invalid or stale pings are answered accepted=False
        and never reach viewers; unknown partners raise PartnerNotFound.
        """
        try:
            location = await self.ingest.report_location(partner_id, ping)
        except InvalidLocation as e:
            return LocationReportResponse(accepted=False, reason=str(e), partner_id=partner_id)

        return LocationReportResponse(accepted=True, partner_id=partner_id, location=location)

    # ====================
    # Viewer subscriptions
    # ====================

    async def subscribe(self, viewer_id: str, order_id: str) -> ViewerChannel:
        """
        Open a channel for one viewer connection. The channel is registered
        before the order is read so no transition committed meanwhile is missed.

        Raises:
            OrderNotFound: unknown order (no channel is left open)
        """
        channel = self.registry.subscribe(viewer_id, order_id)
        try:
            order = await self.get_order(order_id)
        except OrderNotFound:
            self.registry.unsubscribe(channel.connection_id)
            raise
        self.registry.track_order(order)
        return channel

    def unsubscribe(self, connection_id: str) -> bool:
        return self.registry.unsubscribe(connection_id)
