"""
Order State Machine

The single authority over order status: the transition table, which role
may take which edge, and the pure application of a transition to an order.

    pending -> accepted -> assigned -> pickup -> in_transit -> delivered
    pending | accepted | assigned -> cancelled

Nothing here performs I/O; persistence and notification belong to the
service layer.
"""

import uuid
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from .models import (
    DeliveryPartner,
    Order,
    OrderStatus,
    Role,
    TrackingUpdate,
    as_utc,
    utc_now,
)
from .protocols import InvalidTransition

S = OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.ASSIGNED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.PICKUP, S.CANCELLED}),
    S.PICKUP: frozenset({S.IN_TRANSIT}),
    S.IN_TRANSIT: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Roles allowed per edge. Partners assign themselves when they pick an
# available order; vendors assign a partner of their choice.
EDGE_ROLES: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[Role]] = {
    (S.PENDING, S.ACCEPTED): frozenset({Role.VENDOR}),
    (S.ACCEPTED, S.ASSIGNED): frozenset({Role.VENDOR, Role.PARTNER}),
    (S.ASSIGNED, S.PICKUP): frozenset({Role.PARTNER}),
    (S.PICKUP, S.IN_TRANSIT): frozenset({Role.PARTNER}),
    (S.IN_TRANSIT, S.DELIVERED): frozenset({Role.PARTNER}),
    (S.PENDING, S.CANCELLED): frozenset({Role.VENDOR}),
    (S.ACCEPTED, S.CANCELLED): frozenset({Role.VENDOR}),
    (S.ASSIGNED, S.CANCELLED): frozenset({Role.VENDOR}),
}

TERMINAL_STATUSES = frozenset({S.DELIVERED, S.CANCELLED})

# Statuses in which the order holds its partner
ACTIVE_STATUSES = frozenset({S.ASSIGNED, S.PICKUP, S.IN_TRANSIT})

# Statuses that trigger a new delivery estimate
ETA_STATUSES = frozenset({S.ASSIGNED, S.PICKUP, S.IN_TRANSIT})

# Statuses that release the partner
RELEASE_STATUSES = TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def is_authorized(current: OrderStatus, target: OrderStatus, role: Role) -> bool:
    allowed = EDGE_ROLES.get((OrderStatus(current), OrderStatus(target)), frozenset())
    return Role(role) in allowed


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def status_message(status: OrderStatus, note: Optional[str] = None) -> str:
    """Tracking message, e.g. "Order in transit" or "Order cancelled: out of stock" """
    message = f"Order {OrderStatus(status).value.replace('_', ' ')}"
    if note:
        message = f"{message}: {note}"
    return message


def validate_transition(
    order: Order,
    target_status: OrderStatus,
    acting_role: Role,
    partner_id: Optional[str] = None,
) -> None:
    """Raise InvalidTransition unless the edge exists and the role may take it"""
    current = order.status
    target = OrderStatus(target_status)

    if not can_transition(current, target):
        raise InvalidTransition(current, target, "no such transition")

    if not is_authorized(current, target, acting_role):
        raise InvalidTransition(
            current, target, f"role '{Role(acting_role).value}' may not perform this transition"
        )

    if target == S.ASSIGNED and not partner_id:
        raise InvalidTransition(current, target, "a partner id is required for assignment")


def apply_transition(
    order: Order,
    target_status: OrderStatus,
    partner: Optional[DeliveryPartner] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Order, TrackingUpdate]:
    """
    Build the order after the transition plus its tracking update.

    The input order is left untouched. The update timestamp is clamped to
    the last update's so history stays non-decreasing even if the clock
    steps back.
    """
    target = OrderStatus(target_status)
    now = as_utc(now) if now else utc_now()
    if order.tracking_updates:
        now = max(now, order.tracking_updates[-1].timestamp)

    updated = order.model_copy(deep=True)
    updated.status = target
    updated.updated_at = now

    if target == S.ASSIGNED and partner is not None:
        updated.partner_id = partner.partner_id
    if target == S.DELIVERED:
        updated.actual_delivery_time = now

    snapshot = None
    if partner is not None and partner.partner_id == updated.partner_id:
        snapshot = partner.current_location

    tracking_update = TrackingUpdate(
        update_id=f"upd_{uuid.uuid4().hex[:16]}",
        order_id=order.order_id,
        status=target,
        location=snapshot,
        timestamp=now,
        message=status_message(target, note),
    )
    updated.tracking_updates.append(tracking_update)
    return updated, tracking_update


def transition(
    order: Order,
    target_status: OrderStatus,
    acting_role: Role,
    partner: Optional[DeliveryPartner] = None,
    partner_id: Optional[str] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Order, TrackingUpdate]:
    """Validate then apply; the order is unmodified when InvalidTransition is raised"""
    if partner_id is None and partner is not None:
        partner_id = partner.partner_id
    validate_transition(order, target_status, acting_role, partner_id)
    return apply_transition(order, target_status, partner=partner, note=note, now=now)
