"""
NATS JetStream Client for Python Microservices

Platform event bus: the service publishes domain events to JetStream streams;
other services consume them with durable consumers.

    event_bus = await get_event_bus("tracking_service")
    await event_bus.publish_event(Event(EventType.ORDER_STATUS_CHANGED, ServiceSource.TRACKING_SERVICE, data))
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published on the platform bus"""

    # Order lifecycle
    ORDER_CREATED = "tracking.order.created"
    ORDER_STATUS_CHANGED = "tracking.order.status_changed"
    ORDER_ASSIGNED = "tracking.order.assigned"
    ORDER_DELIVERED = "tracking.order.delivered"
    ORDER_CANCELLED = "tracking.order.cancelled"

    # Delivery partners
    PARTNER_REGISTERED = "tracking.partner.registered"
    PARTNER_ONLINE = "tracking.partner.online"
    PARTNER_OFFLINE = "tracking.partner.offline"


class ServiceSource(Enum):
    """Publishing service"""

    TRACKING_SERVICE = "tracking_service"
    ETA_SERVICE = "eta_service"
    GATEWAY = "api_gateway"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }


class NATSEventBus:
    """
    NATS JetStream event bus.

    Streams are derived from the first subject token of the event type,
    e.g. tracking.order.created -> tracking-stream (subjects tracking.>).
    """

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        nats_url: Optional[str] = None,
    ):
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)

        if nats_url:
            self.nats_url = nats_url
        else:
            host, port = config.discover_service(
                service_name='nats_service',
                default_host=config.infra.nats_host,
                default_port=config.infra.nats_port,
                env_host_key='NATS_HOST',
                env_port_key='NATS_PORT'
            )
            self.nats_url = config.infra.nats_url or f"nats://{host}:{port}"

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._known_streams: set = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.nats_url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.nats_url], name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS at {self.nats_url}: {e}")
            raise

    def _get_stream_name_for_event(self, event_type: str) -> str:
        prefix = event_type.split('.')[0]
        return f"{prefix}-stream"

    async def _ensure_stream(self, event_type: str) -> str:
        stream_name = self._get_stream_name_for_event(event_type)
        if stream_name in self._known_streams:
            return stream_name
        prefix = event_type.split('.')[0]
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
        except Exception as e:
            # Stream already exists with the same subjects
            logger.debug(f"Stream creation note: {e}")
        self._known_streams.add(stream_name)
        return stream_name

    async def publish_event(self, event: Event) -> bool:
        """Publish an event to its JetStream stream; returns False on failure"""
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            subject = event.type
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            stream_name = await self._ensure_stream(event.type)

            ack = await self._js.publish(subject, data, stream=stream_name)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id} to stream: {e}")
            return False

    async def close(self):
        """Flush pending publishes and close the connection"""
        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """Get or create the process-wide event bus"""
    global _event_bus

    if _event_bus is None:
        bus = NATSEventBus(service_name=service_name, config=config)
        await bus.connect()
        _event_bus = bus

    return _event_bus
