"""
Subscription Registry

Keeps which viewer watches which order and delivers viewer events:

- StatusChanged: ordered, reliable, unbounded per channel
- LocationChanged: last-value-wins, one slot per channel

Every subscribe call opens its own channel under a fresh connection id, so
one viewer watching an order from two sockets gets every event on both.

Location events are only delivered for the partner currently assigned to
the order; the assignment is tracked here from the status events the
service publishes, and only for orders that have open channels.
Publishing never awaits a consumer.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from .models import LocationChanged, Location, Order, StatusChanged, TrackingUpdate, ViewerEvent
from .state_machine import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


class ViewerChannel:
    """Event stream of one viewer connection for one order"""

    def __init__(self, viewer_id: str, order_id: str, connection_id: Optional[str] = None):
        self.viewer_id = viewer_id
        self.order_id = order_id
        self.connection_id = connection_id or str(uuid.uuid4())
        self._status_events: Deque[StatusChanged] = deque()
        self._latest_location: Optional[LocationChanged] = None
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped_locations = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._status_events) + (1 if self._latest_location else 0)

    def push_status(self, event: StatusChanged) -> bool:
        if self._closed:
            return False
        self._status_events.append(event)
        self._ready.set()
        return True

    def push_location(self, event: LocationChanged) -> bool:
        if self._closed:
            return False
        if self._latest_location is not None:
            self.dropped_locations += 1
        self._latest_location = event
        self._ready.set()
        return True

    def get_nowait(self) -> Optional[ViewerEvent]:
        """Next event or None; status events go before the pending location"""
        if self._status_events:
            return self._status_events.popleft()
        if self._latest_location is not None:
            event, self._latest_location = self._latest_location, None
            return event
        return None

    async def get(self) -> Optional[ViewerEvent]:
        """Wait for the next event; None once the channel is closed and drained"""
        while True:
            event = self.get_nowait()
            if event is not None:
                return event
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()

    def drain(self) -> List[ViewerEvent]:
        events = []
        event = self.get_nowait()
        while event is not None:
            events.append(event)
            event = self.get_nowait()
        return events

    def close(self):
        self._closed = True
        self._ready.set()


class SubscriptionRegistry:
    """In-process registry of viewer channels keyed by order and connection"""

    def __init__(self):
        # order_id -> connection_id -> channel
        self._channels: Dict[str, Dict[str, ViewerChannel]] = {}
        # viewer_id -> open connection ids
        self._viewer_sessions: Dict[str, Set[str]] = {}
        # connection_id -> channel
        self._connections: Dict[str, ViewerChannel] = {}
        # order_id -> partner whose pings reach the order's viewers
        self._tracked_partner: Dict[str, str] = {}
        # order_id -> version of the order state last tracked; kept while the order has channels
        self._tracked_version: Dict[str, int] = {}

    def subscribe(self, viewer_id: str, order_id: str) -> ViewerChannel:
        """Open a new channel for one viewer connection"""
        channel = ViewerChannel(viewer_id, order_id)
        self._channels.setdefault(order_id, {})[channel.connection_id] = channel
        self._viewer_sessions.setdefault(viewer_id, set()).add(channel.connection_id)
        self._connections[channel.connection_id] = channel
        logger.info(f"Viewer {viewer_id} subscribed to order {order_id} ({channel.connection_id})")
        return channel

    def unsubscribe(self, connection_id: str) -> bool:
        """Close one connection's channel; the viewer's other connections stay open"""
        channel = self._connections.pop(connection_id, None)
        if channel is None:
            return False
        channel.close()

        sessions = self._viewer_sessions.get(channel.viewer_id)
        if sessions is not None:
            sessions.discard(connection_id)
            if not sessions:
                del self._viewer_sessions[channel.viewer_id]

        channels = self._channels.get(channel.order_id)
        if channels is not None:
            channels.pop(connection_id, None)
            if not channels:
                del self._channels[channel.order_id]
                self._forget_order(channel.order_id)

        logger.info(f"Viewer {channel.viewer_id} unsubscribed from order {channel.order_id} ({connection_id})")
        return True

    def _forget_order(self, order_id: str):
        self._tracked_partner.pop(order_id, None)
        self._tracked_version.pop(order_id, None)

    def track_order(self, order: Order):
        """
        Sync the tracked partner of a watched order with its current state.

        Orders without channels are not tracked. Older versions are ignored,
        so a late read never brings back a partner a newer state released.
        """
        if order.order_id not in self._channels:
            return
        if order.version < self._tracked_version.get(order.order_id, 0):
            return
        self._tracked_version[order.order_id] = order.version
        if order.partner_id and order.status in ACTIVE_STATUSES:
            self._tracked_partner[order.order_id] = order.partner_id
        else:
            self._tracked_partner.pop(order.order_id, None)

    def tracked_partner(self, order_id: str) -> Optional[str]:
        return self._tracked_partner.get(order_id)

    def tracked_order_count(self) -> int:
        return len(self._tracked_version)

    def viewer_connections(self, viewer_id: str) -> int:
        return len(self._viewer_sessions.get(viewer_id, ()))

    def publish_status(self, order: Order, tracking_update: TrackingUpdate) -> int:
        """Deliver StatusChanged to every viewer of the order"""
        self.track_order(order)
        event = StatusChanged(order=order, tracking_update=tracking_update)
        delivered = 0
        for channel in list(self._channels.get(order.order_id, {}).values()):
            if channel.push_status(event):
                delivered += 1
        logger.debug(f"Status {order.status.value} of order {order.order_id} delivered to {delivered} viewers")
        return delivered

    def publish_location(self, order_id: str, partner_id: str, location: Location) -> int:
        """Deliver LocationChanged if partner is the one tracked for the order"""
        if self._tracked_partner.get(order_id) != partner_id:
            return 0
        event = LocationChanged(order_id=order_id, partner_id=partner_id, location=location)
        delivered = 0
        for channel in list(self._channels.get(order_id, {}).values()):
            if channel.push_location(event):
                delivered += 1
        return delivered

    def partner_offline(self, partner_id: str) -> int:
        """Stop location delivery for every order tracking this partner"""
        orders = [oid for oid, pid in self._tracked_partner.items() if pid == partner_id]
        for order_id in orders:
            del self._tracked_partner[order_id]
        return len(orders)

    def subscriber_count(self, order_id: Optional[str] = None) -> int:
        if order_id is not None:
            return len(self._channels.get(order_id, {}))
        return sum(len(viewers) for viewers in self._channels.values())

    def order_count(self) -> int:
        return len(self._channels)

    def close_all(self):
        for channel in self._connections.values():
            channel.close()
        self._channels.clear()
        self._viewer_sessions.clear()
        self._connections.clear()
        self._tracked_partner.clear()
        self._tracked_version.clear()
