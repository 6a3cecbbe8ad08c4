"""
Tracking Repository

PostgreSQL implementation of TrackingRepositoryProtocol on an asyncpg pool.
Every update is `UPDATE ... WHERE version = $n` inside one transaction;
a zero row count means the caller lost the race (StaleWrite) or the record
does not exist.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClientWrapper

from .models import DeliveryPartner, Location, Order, OrderItem, OrderStatus, TrackingUpdate
from .protocols import DuplicateRecordError, OrderNotFound, PartnerNotFound, StaleWrite
from .state_machine import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

SCHEMA = "tracking"

SCHEMA_DDL = f"""
CREATE SCHEMA IF NOT EXISTS {SCHEMA};

CREATE TABLE IF NOT EXISTS {SCHEMA}.orders (
    order_id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    partner_id TEXT,
    status TEXT NOT NULL,
    items JSONB NOT NULL,
    total_amount NUMERIC(12, 2) NOT NULL,
    pickup_location JSONB NOT NULL,
    delivery_location JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    estimated_delivery_time TIMESTAMPTZ,
    actual_delivery_time TIMESTAMPTZ,
    version INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS {SCHEMA}.tracking_updates (
    seq BIGSERIAL PRIMARY KEY,
    update_id TEXT UNIQUE NOT NULL,
    order_id TEXT NOT NULL REFERENCES {SCHEMA}.orders(order_id),
    status TEXT NOT NULL,
    location JSONB,
    timestamp TIMESTAMPTZ NOT NULL,
    message TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {SCHEMA}.delivery_partners (
    partner_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    phone TEXT NOT NULL,
    vehicle TEXT,
    is_online BOOLEAN NOT NULL DEFAULT FALSE,
    current_location JSONB,
    current_order_id TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_orders_customer ON {SCHEMA}.orders(customer_id);
CREATE INDEX IF NOT EXISTS idx_orders_vendor_status ON {SCHEMA}.orders(vendor_id, status);
CREATE INDEX IF NOT EXISTS idx_orders_partner_status ON {SCHEMA}.orders(partner_id, status);
CREATE INDEX IF NOT EXISTS idx_updates_order ON {SCHEMA}.tracking_updates(order_id, seq);
"""

ORDER_COLUMNS = (
    "order_id, customer_id, vendor_id, partner_id, status, items, total_amount, "
    "pickup_location, delivery_location, created_at, updated_at, "
    "estimated_delivery_time, actual_delivery_time, version"
)


def _dump_location(location: Optional[Location]) -> Optional[str]:
    return location.model_dump_json() if location else None


def _load_json(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


class TrackingRepository:
    """
    Repository for orders, tracking updates and delivery partners

    Handles all database operations using the asyncpg pool wrapper.
    """

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClientWrapper] = None):
        if config is None:
            config = ConfigManager("tracking_service")

        self.db = db or PostgresClientWrapper(service_name=config.service_name)
        self.schema = SCHEMA

        logger.info("TrackingRepository initialized with asyncpg pool")

    async def initialize(self):
        """Create schema and tables if missing"""
        async with self.db.acquire() as conn:
            await conn.execute(SCHEMA_DDL)
        logger.info(f"Schema '{self.schema}' ready")

    async def close(self):
        await self.db.close()

    async def health_check(self) -> bool:
        return await self.db.health_check() is not None

    # ==================== Orders ====================

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {ORDER_COLUMNS} FROM {self.schema}.orders WHERE order_id = $1", order_id
            )
            if row is None:
                return None
            updates = await self._fetch_updates(conn, [order_id])
        return self._row_to_order(row, updates.get(order_id, []))

    async def create_order(self, order: Order) -> Order:
        async with self.db.transaction() as conn:
            status = await conn.execute(
                f"""
                INSERT INTO {self.schema}.orders ({ORDER_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8::jsonb, $9::jsonb, $10, $11, $12, $13, 1)
                ON CONFLICT (order_id) DO NOTHING
                """,
                order.order_id, order.customer_id, order.vendor_id, order.partner_id,
                order.status.value, self._dump_items(order.items), order.total_amount,
                _dump_location(order.pickup_location), _dump_location(order.delivery_location),
                order.created_at, order.updated_at,
                order.estimated_delivery_time, order.actual_delivery_time,
            )
            if status != "INSERT 0 1":
                raise DuplicateRecordError(f"Order {order.order_id} already exists")
            await self._insert_updates(conn, order.tracking_updates)

        stored = order.model_copy(deep=True)
        stored.version = 1
        return stored

    async def update_order(self, order: Order, expected_version: int) -> Order:
        async with self.db.transaction() as conn:
            await self._write_order(conn, order, expected_version)

        stored = order.model_copy(deep=True)
        stored.version = expected_version + 1
        return stored

    async def update_order_and_partner(
        self,
        order: Order,
        expected_order_version: int,
        partner: DeliveryPartner,
        expected_partner_version: int,
    ) -> Tuple[Order, DeliveryPartner]:
        # One transaction: a StaleWrite on either record rolls back both
        async with self.db.transaction() as conn:
            await self._write_order(conn, order, expected_order_version)
            await self._write_partner(conn, partner, expected_partner_version)

        stored_order = order.model_copy(deep=True)
        stored_order.version = expected_order_version + 1
        stored_partner = partner.model_copy(deep=True)
        stored_partner.version = expected_partner_version + 1
        return stored_order, stored_partner

    async def find_active_by_partner(self, partner_id: str) -> Optional[Order]:
        orders = await self._select_orders(
            "partner_id = $1 AND status = ANY($2::text[])",
            [partner_id, [s.value for s in ACTIVE_STATUSES]],
            limit=1,
        )
        return orders[0] if orders else None

    async def find_pending_by_vendor(self, vendor_id: str) -> List[Order]:
        return await self._select_orders(
            "vendor_id = $1 AND status = $2", [vendor_id, OrderStatus.PENDING.value]
        )

    async def list_orders_by_customer(self, customer_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        return await self._select_orders("customer_id = $1", [customer_id], limit, offset)

    async def list_orders_by_vendor(self, vendor_id: str, limit: int = 50, offset: int = 0) -> List[Order]:
        return await self._select_orders("vendor_id = $1", [vendor_id], limit, offset)

    async def list_orders_by_status(self, status: OrderStatus, limit: int = 50, offset: int = 0) -> List[Order]:
        return await self._select_orders("status = $1", [OrderStatus(status).value], limit, offset)

    # ==================== Partners ====================

    async def get_partner(self, partner_id: str) -> Optional[DeliveryPartner]:
        """Get partner by ID"""
        row = await self.db.query_row(
            f"SELECT * FROM {self.schema}.delivery_partners WHERE partner_id = $1", [partner_id]
        )
        return self._row_to_partner(row) if row else None

    async def create_partner(self, partner: DeliveryPartner) -> DeliveryPartner:
        status = await self.db.execute(
            f"""
            INSERT INTO {self.schema}.delivery_partners
                (partner_id, name, phone, vehicle, is_online, current_location, current_order_id,
                 created_at, updated_at, version)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9, 1)
            ON CONFLICT (partner_id) DO NOTHING
            """,
            [
                partner.partner_id, partner.name, partner.phone, partner.vehicle, partner.is_online,
                _dump_location(partner.current_location), partner.current_order_id,
                partner.created_at, partner.updated_at,
            ],
        )
        if status != "INSERT 0 1":
            raise DuplicateRecordError(f"Partner {partner.partner_id} already exists")

        stored = partner.model_copy(deep=True)
        stored.version = 1
        return stored

    async def update_partner(self, partner: DeliveryPartner, expected_version: int) -> DeliveryPartner:
        async with self.db.transaction() as conn:
            await self._write_partner(conn, partner, expected_version)

        stored = partner.model_copy(deep=True)
        stored.version = expected_version + 1
        return stored

    async def list_partners(self, online_only: bool = False) -> List[DeliveryPartner]:
        where = "WHERE is_online" if online_only else ""
        rows = await self.db.query(
            f"SELECT * FROM {self.schema}.delivery_partners {where} ORDER BY created_at"
        )
        return [self._row_to_partner(row) for row in rows]

    # ==================== Internals ====================

    async def _write_order(self, conn, order: Order, expected_version: int):
        status = await conn.execute(
            f"""
            UPDATE {self.schema}.orders
            SET partner_id = $3, status = $4, updated_at = $5,
                estimated_delivery_time = $6, actual_delivery_time = $7,
                version = version + 1
            WHERE order_id = $1 AND version = $2
            """,
            order.order_id, expected_version, order.partner_id, order.status.value,
            order.updated_at, order.estimated_delivery_time, order.actual_delivery_time,
        )
        if status != "UPDATE 1":
            exists = await conn.fetchval(
                f"SELECT version FROM {self.schema}.orders WHERE order_id = $1", order.order_id
            )
            if exists is None:
                raise OrderNotFound(f"Order not found: {order.order_id}")
            raise StaleWrite(
                f"Order {order.order_id} is at version {exists}, expected {expected_version}"
            )
        # Tracking history is append-only; already stored entries are skipped
        await self._insert_updates(conn, order.tracking_updates)

    async def _write_partner(self, conn, partner: DeliveryPartner, expected_version: int):
        status = await conn.execute(
            f"""
            UPDATE {self.schema}.delivery_partners
            SET name = $3, phone = $4, vehicle = $5, is_online = $6,
                current_location = $7::jsonb, current_order_id = $8, updated_at = $9,
                version = version + 1
            WHERE partner_id = $1 AND version = $2
            """,
            partner.partner_id, expected_version, partner.name, partner.phone, partner.vehicle,
            partner.is_online, _dump_location(partner.current_location), partner.current_order_id,
            partner.updated_at,
        )
        if status != "UPDATE 1":
            exists = await conn.fetchval(
                f"SELECT version FROM {self.schema}.delivery_partners WHERE partner_id = $1",
                partner.partner_id,
            )
            if exists is None:
                raise PartnerNotFound(f"Partner not found: {partner.partner_id}")
            raise StaleWrite(
                f"Partner {partner.partner_id} is at version {exists}, expected {expected_version}"
            )

    async def _insert_updates(self, conn, updates: List[TrackingUpdate]):
        if not updates:
            return
        await conn.executemany(
            f"""
            INSERT INTO {self.schema}.tracking_updates (update_id, order_id, status, location, timestamp, message)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6)
            ON CONFLICT (update_id) DO NOTHING
            """,
            [
                (u.update_id, u.order_id, u.status.value, _dump_location(u.location), u.timestamp, u.message)
                for u in updates
            ],
        )

    async def _fetch_updates(self, conn, order_ids: List[str]) -> Dict[str, List[TrackingUpdate]]:
        rows = await conn.fetch(
            f"""
            SELECT update_id, order_id, status, location, timestamp, message
            FROM {self.schema}.tracking_updates
            WHERE order_id = ANY($1::text[])
            ORDER BY seq
            """,
            order_ids,
        )
        updates: Dict[str, List[TrackingUpdate]] = {}
        for row in rows:
            location = _load_json(row["location"])
            updates.setdefault(row["order_id"], []).append(TrackingUpdate(
                update_id=row["update_id"],
                order_id=row["order_id"],
                status=OrderStatus(row["status"]),
                location=Location(**location) if location else None,
                timestamp=row["timestamp"],
                message=row["message"],
            ))
        return updates

    async def _select_orders(
        self, where: str, params: List[Any], limit: Optional[int] = None, offset: int = 0
    ) -> List[Order]:
        sql = f"SELECT {ORDER_COLUMNS} FROM {self.schema}.orders WHERE {where} ORDER BY created_at DESC"
        if limit is not None:
            sql += f" LIMIT {int(limit)} OFFSET {int(offset)}"

        async with self.db.acquire() as conn:
            rows = await conn.fetch(sql, *params)
            updates = await self._fetch_updates(conn, [row["order_id"] for row in rows]) if rows else {}
        return [self._row_to_order(row, updates.get(row["order_id"], [])) for row in rows]

    @staticmethod
    def _dump_items(items: List[OrderItem]) -> str:
        return json.dumps([item.model_dump(mode="json") for item in items])

    @staticmethod
    def _row_to_order(row, updates: List[TrackingUpdate]) -> Order:
        return Order(
            order_id=row["order_id"],
            customer_id=row["customer_id"],
            vendor_id=row["vendor_id"],
            partner_id=row["partner_id"],
            status=OrderStatus(row["status"]),
            items=[OrderItem(**item) for item in _load_json(row["items"])],
            total_amount=row["total_amount"],
            pickup_location=Location(**_load_json(row["pickup_location"])),
            delivery_location=Location(**_load_json(row["delivery_location"])),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            estimated_delivery_time=row["estimated_delivery_time"],
            actual_delivery_time=row["actual_delivery_time"],
            tracking_updates=updates,
            version=row["version"],
        )

    @staticmethod
    def _row_to_partner(row) -> DeliveryPartner:
        location = _load_json(row["current_location"])
        return DeliveryPartner(
            partner_id=row["partner_id"],
            name=row["name"],
            phone=row["phone"],
            vehicle=row["vehicle"],
            is_online=row["is_online"],
            current_location=Location(**location) if location else None,
            current_order_id=row["current_order_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            version=row["version"],
        )
