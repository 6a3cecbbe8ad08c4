"""
Unit Test Layer Configuration

Structure:
    tests/unit/
    └── tracking/    State machine, registry, ingest, store, service logic

Usage:
    pytest tests/unit -v                 # All unit tests
    pytest tests/unit -m unit -v         # By marker
"""
import os
import sys

import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from microservices.tracking_service.memory_repository import InMemoryTrackingRepository
from microservices.tracking_service.subscription_registry import SubscriptionRegistry
from microservices.tracking_service.tracking_service import TrackingService
from tests.component.mocks import MockEtaEstimator, MockEventBus
from tests.fixtures import make_order_create_request, make_partner_create_request


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


# =============================================================================
# Dependencies
# =============================================================================

@pytest.fixture
def repository() -> InMemoryTrackingRepository:
    """Fresh in-memory store"""
    return InMemoryTrackingRepository()


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_eta() -> MockEtaEstimator:
    """Mock ETA estimator answering 25 minutes"""
    return MockEtaEstimator()


@pytest.fixture
def service(repository, registry, mock_event_bus, mock_eta) -> TrackingService:
    """TrackingService wired to in-memory dependencies"""
    return TrackingService(
        repository=repository,
        event_bus=mock_event_bus,
        eta_estimator=mock_eta,
        registry=registry,
        max_write_retries=3,
        eta_timeout_seconds=0.2,
    )


# =============================================================================
# Seeded Data
# =============================================================================

@pytest_asyncio.fixture
async def pending_order(service):
    """An order just placed by a customer"""
    return await service.create_order(make_order_create_request())


@pytest_asyncio.fixture
async def online_partner(service):
    """A registered partner that is online and idle"""
    return await service.register_partner(make_partner_create_request(is_online=True))


@pytest_asyncio.fixture
async def assigned_order(service, pending_order, online_partner):
    """An order accepted by its vendor and assigned to online_partner"""
    await service.transition_order(pending_order.order_id, "accepted", "vendor")
    return await service.transition_order(
        pending_order.order_id, "assigned", "vendor", partner_id=online_partner.partner_id
    )
