"""
Tracking Service Component Fixtures

The app runs through its real lifespan (in-memory store, no NATS, no
Consul, no ETA service). TestClient is always entered as a context manager
so HTTP calls and WebSocket sessions share one event loop.
"""
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from tests.fixtures import make_order_create_request, make_partner_create_request


class TrackingApi:
    """Thin request helpers over the TestClient"""

    def __init__(self, client: TestClient):
        self.client = client

    def create_order(self, **overrides) -> Dict[str, Any]:
        body = make_order_create_request(**overrides).model_dump(mode="json")
        response = self.client.post("/api/v1/orders", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    def register_partner(self, **overrides) -> Dict[str, Any]:
        body = make_partner_create_request(**overrides).model_dump(mode="json")
        response = self.client.post("/api/v1/partners", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    def transition(
        self,
        order_id: str,
        target_status: str,
        acting_role: str,
        partner_id: Optional[str] = None,
        note: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        body = {"target_status": target_status, "acting_role": acting_role}
        if partner_id:
            body["partner_id"] = partner_id
        if note:
            body["note"] = note
        return self.client.post(f"/api/v1/orders/{order_id}/transition", json=body, headers=headers)

    def advance(self, order_id: str, partner_id: str, until: str) -> Dict[str, Any]:
        """Walk an order along the happy path up to and including `until`"""
        steps = [
            ("accepted", "vendor", None),
            ("assigned", "vendor", partner_id),
            ("pickup", "partner", None),
            ("in_transit", "partner", None),
            ("delivered", "partner", None),
        ]
        order = None
        for target, role, pid in steps:
            response = self.transition(order_id, target, role, partner_id=pid)
            assert response.status_code == 200, response.text
            order = response.json()
            if target == until:
                break
        return order

    def ping(self, partner_id: str, latitude: float = 12.95, longitude: float = 77.61, **extra):
        body = {"latitude": latitude, "longitude": longitude, **extra}
        return self.client.post(f"/api/v1/partners/{partner_id}/location", json=body)


@pytest.fixture
def client():
    """TestClient with the app lifespan running"""
    from microservices.tracking_service.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api(client) -> TrackingApi:
    return TrackingApi(client)


@pytest.fixture
def bus(client, mock_event_bus):
    """Swap the running service's event bus for the recording mock"""
    from microservices.tracking_service import main

    main.tracking_service.event_bus = mock_event_bus
    return mock_event_bus
