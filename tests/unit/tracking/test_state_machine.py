"""
Order State Machine Unit Tests

Transition table, role permissions and pure transition application.

Usage:
    pytest tests/unit/tracking/test_state_machine.py -v
"""
from datetime import timedelta

import pytest

from microservices.tracking_service import state_machine
from microservices.tracking_service.models import OrderStatus, Role
from microservices.tracking_service.protocols import InvalidTransition
from tests.fixtures import make_location, make_order, make_partner, make_timestamp

pytestmark = [pytest.mark.unit]

S = OrderStatus

ALLOWED_EDGES = [
    (S.PENDING, S.ACCEPTED),
    (S.ACCEPTED, S.ASSIGNED),
    (S.ASSIGNED, S.PICKUP),
    (S.PICKUP, S.IN_TRANSIT),
    (S.IN_TRANSIT, S.DELIVERED),
    (S.PENDING, S.CANCELLED),
    (S.ACCEPTED, S.CANCELLED),
    (S.ASSIGNED, S.CANCELLED),
]


# =============================================================================
# Transition Table
# =============================================================================

class TestTransitionTable:
    """can_transition / is_terminal"""

    @pytest.mark.parametrize("current,target", ALLOWED_EDGES)
    def test_allowed_edges(self, current, target):
        assert state_machine.can_transition(current, target)

    def test_every_other_pair_is_rejected(self):
        for current in S:
            for target in S:
                expected = (current, target) in ALLOWED_EDGES
                assert state_machine.can_transition(current, target) is expected, (current, target)

    @pytest.mark.parametrize("status", [S.PICKUP, S.IN_TRANSIT])
    def test_no_cancellation_after_pickup(self, status):
        assert not state_machine.can_transition(status, S.CANCELLED)

    @pytest.mark.parametrize("status", [S.DELIVERED, S.CANCELLED])
    def test_terminal_statuses_have_no_exits(self, status):
        assert state_machine.is_terminal(status)
        assert all(not state_machine.can_transition(status, t) for t in S)

    def test_accepts_plain_strings(self):
        assert state_machine.can_transition("pending", "accepted")
        assert not state_machine.is_terminal("in_transit")


# =============================================================================
# Role Permissions
# =============================================================================

class TestRolePermissions:
    """is_authorized"""

    def test_vendor_accepts_and_cancels(self):
        assert state_machine.is_authorized(S.PENDING, S.ACCEPTED, Role.VENDOR)
        assert state_machine.is_authorized(S.ASSIGNED, S.CANCELLED, Role.VENDOR)

    def test_customer_may_not_change_status(self):
        for current, target in ALLOWED_EDGES:
            assert not state_machine.is_authorized(current, target, Role.CUSTOMER)

    def test_partner_drives_the_delivery(self):
        assert state_machine.is_authorized(S.ASSIGNED, S.PICKUP, Role.PARTNER)
        assert state_machine.is_authorized(S.PICKUP, S.IN_TRANSIT, Role.PARTNER)
        assert state_machine.is_authorized(S.IN_TRANSIT, S.DELIVERED, Role.PARTNER)

    def test_vendor_may_not_mark_delivered(self):
        assert not state_machine.is_authorized(S.IN_TRANSIT, S.DELIVERED, Role.VENDOR)

    def test_both_vendor_and_partner_may_assign(self):
        assert state_machine.is_authorized(S.ACCEPTED, S.ASSIGNED, Role.VENDOR)
        assert state_machine.is_authorized(S.ACCEPTED, S.ASSIGNED, Role.PARTNER)

    def test_partner_may_not_cancel(self):
        assert not state_machine.is_authorized(S.ASSIGNED, S.CANCELLED, Role.PARTNER)


# =============================================================================
# validate_transition
# =============================================================================

class TestValidateTransition:
    """validate_transition() raises InvalidTransition"""

    def test_missing_edge(self):
        order = make_order(status=S.PENDING)
        with pytest.raises(InvalidTransition) as exc_info:
            state_machine.validate_transition(order, S.DELIVERED, Role.PARTNER)

        assert exc_info.value.current_status == S.PENDING
        assert exc_info.value.target_status == S.DELIVERED
        assert "Cannot transition from pending to delivered" in str(exc_info.value)

    def test_wrong_role(self):
        order = make_order(status=S.PENDING)
        with pytest.raises(InvalidTransition, match="role 'customer'"):
            state_machine.validate_transition(order, S.ACCEPTED, Role.CUSTOMER)

    def test_assignment_requires_partner_id(self):
        order = make_order(status=S.ACCEPTED)
        with pytest.raises(InvalidTransition, match="partner id is required"):
            state_machine.validate_transition(order, S.ASSIGNED, Role.VENDOR)

    def test_cancel_delivered_order_rejected(self):
        order = make_order(status=S.DELIVERED)
        with pytest.raises(InvalidTransition):
            state_machine.validate_transition(order, S.CANCELLED, Role.VENDOR)


# =============================================================================
# apply_transition / transition
# =============================================================================

class TestApplyTransition:
    """Pure application of a transition"""

    def test_appends_one_tracking_update(self):
        order = make_order(status=S.PENDING)

        updated, update = state_machine.apply_transition(order, S.ACCEPTED)

        assert updated.status == S.ACCEPTED
        assert len(updated.tracking_updates) == 1
        assert updated.tracking_updates[-1] == update
        assert update.status == S.ACCEPTED
        assert update.order_id == order.order_id
        assert update.update_id.startswith("upd_")
        assert update.message == "Order accepted"
        assert updated.updated_at == update.timestamp

    def test_input_order_untouched(self):
        order = make_order(status=S.PENDING)

        state_machine.apply_transition(order, S.ACCEPTED)

        assert order.status == S.PENDING
        assert order.tracking_updates == []

    def test_assignment_sets_partner_and_snapshots_location(self):
        location = make_location(12.95, 77.60)
        partner = make_partner(current_location=location)
        order = make_order(status=S.ACCEPTED)

        updated, update = state_machine.apply_transition(order, S.ASSIGNED, partner=partner)

        assert updated.partner_id == partner.partner_id
        assert update.location == location

    def test_no_snapshot_for_other_partner(self):
        order = make_order(status=S.ASSIGNED, partner_id="dp_assigned")
        stranger = make_partner(current_location=make_location())

        _, update = state_machine.apply_transition(order, S.PICKUP, partner=stranger)

        assert update.location is None

    def test_delivered_sets_actual_delivery_time(self):
        order = make_order(status=S.IN_TRANSIT, partner_id="dp_1")
        now = make_timestamp()

        updated, _ = state_machine.apply_transition(order, S.DELIVERED, now=now)

        assert updated.actual_delivery_time == now

    def test_note_appended_to_message(self):
        order = make_order(status=S.PICKUP, partner_id="dp_1")

        _, update = state_machine.apply_transition(order, S.IN_TRANSIT, note="stuck at signal")

        assert update.message == "Order in transit: stuck at signal"

    def test_timestamp_never_goes_backwards(self):
        order = make_order(status=S.PENDING)
        later = make_timestamp(60)
        accepted, _ = state_machine.apply_transition(order, S.ACCEPTED, now=later)

        # Clock stepped back
        _, update = state_machine.apply_transition(
            accepted, S.CANCELLED, now=later - timedelta(seconds=30)
        )

        assert update.timestamp == later

    def test_naive_now_treated_as_utc(self):
        order = make_order(status=S.PENDING)
        naive = make_timestamp().replace(tzinfo=None)

        _, update = state_machine.apply_transition(order, S.ACCEPTED, now=naive)

        assert update.timestamp.tzinfo is not None


class TestTransition:
    """transition() = validate + apply"""

    def test_validates_before_applying(self):
        order = make_order(status=S.IN_TRANSIT, partner_id="dp_1")

        with pytest.raises(InvalidTransition):
            state_machine.transition(order, S.CANCELLED, Role.VENDOR)

        assert order.status == S.IN_TRANSIT
        assert order.tracking_updates == []

    def test_partner_object_supplies_partner_id(self):
        partner = make_partner()
        order = make_order(status=S.ACCEPTED)

        updated, _ = state_machine.transition(order, S.ASSIGNED, Role.PARTNER, partner=partner)

        assert updated.partner_id == partner.partner_id

    def test_full_lifecycle_history(self):
        partner = make_partner()
        order = make_order(status=S.PENDING)
        steps = [
            (S.ACCEPTED, Role.VENDOR),
            (S.ASSIGNED, Role.VENDOR),
            (S.PICKUP, Role.PARTNER),
            (S.IN_TRANSIT, Role.PARTNER),
            (S.DELIVERED, Role.PARTNER),
        ]

        for target, role in steps:
            order, _ = state_machine.transition(order, target, role, partner=partner)

        assert [u.status for u in order.tracking_updates] == [t for t, _ in steps]
        stamps = [u.timestamp for u in order.tracking_updates]
        assert stamps == sorted(stamps)
        assert state_machine.is_terminal(order.status)


class TestStatusMessage:

    def test_plain(self):
        assert state_machine.status_message(S.PICKUP) == "Order pickup"

    def test_with_note(self):
        assert state_machine.status_message(S.CANCELLED, "out of stock") == "Order cancelled: out of stock"
