"""
Component Test Layer Configuration

Runs the FastAPI app in-process with the in-memory store and no external
infrastructure (NATS, Consul, ETA service disabled).

Structure:
    tests/component/
    ├── tracking/    API and live event tests
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"
os.environ["CONSUL_ENABLED"] = "false"
os.environ["TRACKING_STORE"] = "memory"
os.environ["ETA_SERVICE_URL"] = ""

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import MockEtaEstimator, MockEventBus


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Event Bus Mocks
# =============================================================================

@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_eta() -> MockEtaEstimator:
    """Mock ETA estimator"""
    return MockEtaEstimator()
