"""
In-Memory Tracking Repository

Process-local implementation of TrackingRepositoryProtocol used for
development and tests. Records are stored as deep copies so callers can
never mutate stored state without a versioned write.

The compare and the write of every CAS happen without an await in between,
so on a single event loop each write is atomic.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .models import DeliveryPartner, Order, OrderStatus
from .protocols import DuplicateRecordError, OrderNotFound, PartnerNotFound, StaleWrite
from .state_machine import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


class InMemoryTrackingRepository:
    """Dict-backed order/partner store with optimistic concurrency"""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._partners: Dict[str, DeliveryPartner] = {}

    # ==================== Reads ====================

    async def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def get_partner(self, partner_id: str) -> Optional[DeliveryPartner]:
        partner = self._partners.get(partner_id)
        return partner.model_copy(deep=True) if partner else None

    async def find_active_by_partner(self, partner_id: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.partner_id == partner_id and order.status in ACTIVE_STATUSES:
                return order.model_copy(deep=True)
        return None

    async def find_pending_by_vendor(self, vendor_id: str) -> List[Order]:
        return self._select(lambda o: o.vendor_id == vendor_id and o.status == OrderStatus.PENDING)

    async def list_orders_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        return self._select(lambda o: o.customer_id == customer_id, limit, offset)

    async def list_orders_by_vendor(self, vendor_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        return self._select(lambda o: o.vendor_id == vendor_id, limit, offset)

    async def list_orders_by_status(self, status: OrderStatus, limit: int = 50, offset: int = 0) -> List[Order]:
        return self._select(lambda o: o.status == status, limit, offset)

    async def list_partners(self, online_only: bool = False) -> List[DeliveryPartner]:
        partners = [p for p in self._partners.values() if p.is_online or not online_only]
        partners.sort(key=lambda p: p.created_at)
        return [p.model_copy(deep=True) for p in partners]

    def _select(self, predicate, limit: Optional[int] = None, offset: int = 0) -> List[Order]:
        # Newest first, like the dashboards list them
        orders = sorted(
            (o for o in self._orders.values() if predicate(o)),
            key=lambda o: o.created_at,
            reverse=True,
        )
        end = offset + limit if limit is not None else None
        return [o.model_copy(deep=True) for o in orders[offset:end]]

    # ==================== Writes ====================

    async def create_order(self, order: Order) -> Order:
        if order.order_id in self._orders:
            raise DuplicateRecordError(f"Order {order.order_id} already exists")
        stored = order.model_copy(deep=True)
        stored.version = 1
        self._orders[stored.order_id] = stored
        logger.debug(f"Order {stored.order_id} stored at version {stored.version}")
        return stored.model_copy(deep=True)

    async def create_partner(self, partner: DeliveryPartner) -> DeliveryPartner:
        if partner.partner_id in self._partners:
            raise DuplicateRecordError(f"Partner {partner.partner_id} already exists")
        stored = partner.model_copy(deep=True)
        stored.version = 1
        self._partners[stored.partner_id] = stored
        return stored.model_copy(deep=True)

    async def update_order(self, order: Order, expected_version: int) -> Order:
        self._check_order(order.order_id, expected_version)
        return self._write_order(order, expected_version)

    async def update_partner(self, partner: DeliveryPartner, expected_version: int) -> DeliveryPartner:
        self._check_partner(partner.partner_id, expected_version)
        return self._write_partner(partner, expected_version)

    async def update_order_and_partner(
        self,
        order: Order,
        expected_order_version: int,
        partner: DeliveryPartner,
        expected_partner_version: int,
    ) -> Tuple[Order, DeliveryPartner]:
        # Both versions are checked before either record is written
        self._check_order(order.order_id, expected_order_version)
        self._check_partner(partner.partner_id, expected_partner_version)
        return (
            self._write_order(order, expected_order_version),
            self._write_partner(partner, expected_partner_version),
        )

    def _check_order(self, order_id: str, expected_version: int):
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFound(f"Order not found: {order_id}")
        if current.version != expected_version:
            raise StaleWrite(
                f"Order {order_id} is at version {current.version}, expected {expected_version}"
            )

    def _check_partner(self, partner_id: str, expected_version: int):
        current = self._partners.get(partner_id)
        if current is None:
            raise PartnerNotFound(f"Partner not found: {partner_id}")
        if current.version != expected_version:
            raise StaleWrite(
                f"Partner {partner_id} is at version {current.version}, expected {expected_version}"
            )

    def _write_order(self, order: Order, expected_version: int) -> Order:
        stored = order.model_copy(deep=True)
        stored.version = expected_version + 1
        self._orders[stored.order_id] = stored
        logger.debug(f"Order {stored.order_id} stored at version {stored.version}")
        return stored.model_copy(deep=True)

    def _write_partner(self, partner: DeliveryPartner, expected_version: int) -> DeliveryPartner:
        stored = partner.model_copy(deep=True)
        stored.version = expected_version + 1
        self._partners[stored.partner_id] = stored
        return stored.model_copy(deep=True)
