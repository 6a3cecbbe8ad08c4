"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - common.py: Base ID generators, timestamps
    - tracking_fixtures.py: Orders, partners, locations, pings
"""

# Common utilities
from .common import (
    make_customer_id,
    make_vendor_id,
    make_partner_id,
    make_order_id,
    make_viewer_id,
    make_timestamp,
)

# Tracking service fixtures
from .tracking_fixtures import (
    make_location,
    make_ping,
    make_order_item,
    make_order_create_request,
    make_partner_create_request,
    make_order,
    make_partner,
)

__all__ = [
    "make_customer_id",
    "make_vendor_id",
    "make_partner_id",
    "make_order_id",
    "make_viewer_id",
    "make_timestamp",
    "make_location",
    "make_ping",
    "make_order_item",
    "make_order_create_request",
    "make_partner_create_request",
    "make_order",
    "make_partner",
]
