"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/  : Component tests (FastAPI app, mocked dependencies)
    - unit/       : Unit tests (pure logic and in-memory store, no I/O)
"""
import os
import sys
from datetime import datetime
from typing import Any, Dict, List

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Import shared fixtures from tests/fixtures
from tests.fixtures import (
    # Common
    make_customer_id,
    make_vendor_id,
    make_partner_id,
    make_order_id,
    make_viewer_id,
    make_timestamp,
    # Tracking fixtures
    make_location,
    make_ping,
    make_order_item,
    make_order_create_request,
    make_partner_create_request,
)


# =============================================================================
# Test Configuration
# =============================================================================

class TestConfig:
    """Centralized test configuration"""

    SERVICES = {
        "tracking_service": 8260,
        "eta_service": 8261,
    }

    # Infrastructure
    POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT = int(os.getenv("POSTGRES_PORT", "5432"))
    NATS_URL = os.getenv("NATS_URL", "nats://localhost:4222")

    # Timeouts
    HTTP_TIMEOUT = 30
    EVENT_WAIT_TIMEOUT = 10

    @classmethod
    def get_service_url(cls, service_name: str) -> str:
        port = cls.SERVICES.get(service_name)
        if not port:
            raise ValueError(f"Unknown service: {service_name}")
        return f"http://localhost:{port}"


@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    """Provide test configuration"""
    return TestConfig()


# =============================================================================
# Test Data Generators
# =============================================================================

class TestDataGenerator:
    """Generate unique test data"""

    _counter = 0

    @classmethod
    def _next_id(cls) -> str:
        cls._counter += 1
        return f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{cls._counter:04d}"

    @classmethod
    def customer_id(cls) -> str:
        return f"cus_test_{cls._next_id()}"

    @classmethod
    def vendor_id(cls) -> str:
        return f"ven_test_{cls._next_id()}"

    @classmethod
    def partner_id(cls) -> str:
        return f"dp_test_{cls._next_id()}"

    @classmethod
    def viewer_id(cls) -> str:
        return f"viewer_test_{cls._next_id()}"


@pytest.fixture
def generate() -> TestDataGenerator:
    """Provide test data generator"""
    return TestDataGenerator()


# =============================================================================
# Assertion Helpers
# =============================================================================

class AssertionHelpers:
    """Custom assertion helpers for tests"""

    @staticmethod
    def assert_http_success(response, expected_status: int = 200):
        """Assert HTTP response is successful"""
        assert response.status_code == expected_status, \
            f"Expected {expected_status}, got {response.status_code}: {response.text}"

    @staticmethod
    def assert_has_fields(data: Dict, fields: List[str]):
        """Assert dict has required fields"""
        missing = [f for f in fields if f not in data]
        assert not missing, f"Missing fields: {missing}"

    @staticmethod
    def assert_error(response, expected_status: int, error_code: str):
        """Assert a domain error response"""
        assert response.status_code == expected_status, \
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        assert response.json()["error_code"] == error_code

    @staticmethod
    def assert_history_ordered(order: Dict[str, Any]):
        """Assert tracking update timestamps never go backwards"""
        stamps = [u["timestamp"] for u in order["tracking_updates"]]
        parsed = [datetime.fromisoformat(s.replace("Z", "+00:00")) for s in stamps]
        assert parsed == sorted(parsed), f"Tracking history out of order: {stamps}"


@pytest.fixture
def assertions() -> AssertionHelpers:
    """Provide assertion helpers"""
    return AssertionHelpers()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "requires_db: needs a running PostgreSQL")


def pytest_collection_modifyitems(config, items):
    """Skip tests whose infrastructure is not available"""
    skip_db = pytest.mark.skip(reason="PostgreSQL not available")

    for item in items:
        if "requires_db" in item.keywords and os.getenv("SKIP_DB_TESTS"):
            item.add_marker(skip_db)


# =============================================================================
# Logging Configuration
# =============================================================================

@pytest.fixture(autouse=True)
def test_logger(request):
    """Log test start/end for debugging"""
    test_name = request.node.name
    print(f"\n{'='*60}")
    print(f"Starting: {test_name}")
    print(f"{'='*60}")

    yield

    print(f"\n{'='*60}")
    print(f"Finished: {test_name}")
    print(f"{'='*60}")
