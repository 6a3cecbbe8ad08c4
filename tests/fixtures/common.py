"""
Common/Shared Fixtures

Base factories and generators used across test layers.
"""
import uuid
from datetime import datetime, timedelta, timezone


def make_customer_id() -> str:
    """Generate a unique customer ID"""
    return f"cus_test_{uuid.uuid4().hex[:12]}"


def make_vendor_id() -> str:
    """Generate a unique vendor ID"""
    return f"ven_test_{uuid.uuid4().hex[:12]}"


def make_partner_id() -> str:
    """Generate a unique delivery partner ID"""
    return f"dp_test_{uuid.uuid4().hex[:12]}"


def make_order_id() -> str:
    """Generate a unique order ID"""
    return f"ord_test_{uuid.uuid4().hex[:12]}"


def make_viewer_id() -> str:
    return f"viewer_test_{uuid.uuid4().hex[:8]}"


def make_timestamp(offset_seconds: float = 0) -> datetime:
    """Current UTC time, shifted by offset_seconds"""
    return datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
