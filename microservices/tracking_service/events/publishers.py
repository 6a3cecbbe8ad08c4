"""
Tracking Service Event Publishers

Functions to publish events from tracking service. Publishing is
best-effort: failures are logged and reported as False, never raised.
"""

import logging
from typing import Optional

from core.nats_client import Event, EventType, ServiceSource
from ..models import DeliveryPartner, Order, OrderStatus, TrackingUpdate, status_label
from .models import (
    OrderCreatedEvent,
    OrderStatusChangedEvent,
    OrderAssignedEvent,
    OrderDeliveredEvent,
    OrderCancelledEvent,
    PartnerRegisteredEvent,
    PartnerAvailabilityEvent,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, data: dict, subject: str) -> bool:
    if not event_bus:
        logger.warning(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.TRACKING_SERVICE,
            data=data,
            subject=subject,
        )
        await event_bus.publish_event(event)
        logger.info(f"✅ Published {event_type.value} event for {subject}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type.value} event: {e}")
        return False


async def publish_order_created(event_bus, order: Order) -> bool:
    """Publish tracking.order.created event"""
    event_data = OrderCreatedEvent(
        order_id=order.order_id,
        customer_id=order.customer_id,
        vendor_id=order.vendor_id,
        total_amount=float(order.total_amount),
        item_count=sum(item.quantity for item in order.items),
    )
    return await _publish(
        event_bus, EventType.ORDER_CREATED, event_data.model_dump(mode='json'), order.order_id
    )


async def publish_status_changed(
    event_bus,
    order: Order,
    old_status: OrderStatus,
    tracking_update: TrackingUpdate,
    acting_role: str,
    note: Optional[str] = None,
) -> bool:
    """Publish tracking.order.status_changed plus the status specific event"""
    event_data = OrderStatusChangedEvent(
        order_id=order.order_id,
        customer_id=order.customer_id,
        vendor_id=order.vendor_id,
        partner_id=order.partner_id,
        old_status=OrderStatus(old_status).value,
        new_status=order.status.value,
        status_label=status_label(order.status),
        message=tracking_update.message,
        acting_role=acting_role,
        estimated_delivery_time=order.estimated_delivery_time,
    )
    published = await _publish(
        event_bus, EventType.ORDER_STATUS_CHANGED, event_data.model_dump(mode='json'), order.order_id
    )

    if order.status == OrderStatus.ASSIGNED and order.partner_id:
        await publish_order_assigned(event_bus, order)
    elif order.status == OrderStatus.DELIVERED:
        await publish_order_delivered(event_bus, order)
    elif order.status == OrderStatus.CANCELLED:
        await publish_order_cancelled(event_bus, order, old_status, reason=note)

    return published


async def publish_order_assigned(event_bus, order: Order) -> bool:
    """Publish tracking.order.assigned event"""
    event_data = OrderAssignedEvent(
        order_id=order.order_id,
        partner_id=order.partner_id,
        vendor_id=order.vendor_id,
        customer_id=order.customer_id,
    )
    return await _publish(
        event_bus, EventType.ORDER_ASSIGNED, event_data.model_dump(mode='json'), order.order_id
    )


async def publish_order_delivered(event_bus, order: Order) -> bool:
    """Publish tracking.order.delivered event"""
    event_data = OrderDeliveredEvent(
        order_id=order.order_id,
        partner_id=order.partner_id,
        customer_id=order.customer_id,
        vendor_id=order.vendor_id,
        delivered_at=order.actual_delivery_time or order.updated_at,
    )
    return await _publish(
        event_bus, EventType.ORDER_DELIVERED, event_data.model_dump(mode='json'), order.order_id
    )


async def publish_order_cancelled(
    event_bus,
    order: Order,
    previous_status: OrderStatus,
    reason: Optional[str] = None,
) -> bool:
    """Publish tracking.order.cancelled event"""
    event_data = OrderCancelledEvent(
        order_id=order.order_id,
        customer_id=order.customer_id,
        vendor_id=order.vendor_id,
        previous_status=OrderStatus(previous_status).value,
        partner_id=order.partner_id,
        reason=reason,
    )
    return await _publish(
        event_bus, EventType.ORDER_CANCELLED, event_data.model_dump(mode='json'), order.order_id
    )


async def publish_partner_registered(event_bus, partner: DeliveryPartner) -> bool:
    """Publish tracking.partner.registered event"""
    event_data = PartnerRegisteredEvent(
        partner_id=partner.partner_id,
        name=partner.name,
        vehicle=partner.vehicle,
    )
    return await _publish(
        event_bus, EventType.PARTNER_REGISTERED, event_data.model_dump(mode='json'), partner.partner_id
    )


async def publish_partner_availability(event_bus, partner: DeliveryPartner) -> bool:
    """Publish tracking.partner.online / tracking.partner.offline event"""
    event_data = PartnerAvailabilityEvent(
        partner_id=partner.partner_id,
        is_online=partner.is_online,
        current_order_id=partner.current_order_id,
    )
    event_type = EventType.PARTNER_ONLINE if partner.is_online else EventType.PARTNER_OFFLINE
    return await _publish(
        event_bus, event_type, event_data.model_dump(mode='json'), partner.partner_id
    )
