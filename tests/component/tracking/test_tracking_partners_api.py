"""
Tracking Service Partner API Component Tests

Partner registration, availability and location ingest over HTTP.
"""
from datetime import datetime, timedelta, timezone

import pytest

pytestmark = [pytest.mark.component]


class TestPartners:

    def test_register_and_get(self, api, client):
        partner = api.register_partner(name="Asha", vehicle="bicycle")

        fetched = client.get(f"/api/v1/partners/{partner['partner_id']}").json()

        assert fetched["name"] == "Asha"
        assert fetched["vehicle"] == "bicycle"
        assert fetched["is_online"] is True
        assert fetched["current_order_id"] is None

    def test_unknown_partner_is_404(self, client, assertions):
        assertions.assert_error(client.get("/api/v1/partners/dp_missing"), 404, "PARTNER_NOT_FOUND")

    def test_register_validation(self, client):
        assert client.post("/api/v1/partners", json={"name": "", "phone": "1"}).status_code == 422

    def test_availability_toggle(self, api, client):
        partner = api.register_partner()

        response = client.put(
            f"/api/v1/partners/{partner['partner_id']}/availability", json={"is_online": False}
        )

        assert response.status_code == 200
        assert response.json()["is_online"] is False

    def test_list_online_only(self, api, client):
        online = api.register_partner(name="Online Rider")
        offline = api.register_partner(name="Offline Rider", is_online=False)

        everyone = client.get("/api/v1/partners").json()
        available = client.get("/api/v1/partners", params={"online_only": "true"}).json()

        all_ids = {p["partner_id"] for p in everyone["partners"]}
        online_ids = {p["partner_id"] for p in available["partners"]}
        assert {online["partner_id"], offline["partner_id"]} <= all_ids
        assert online["partner_id"] in online_ids
        assert offline["partner_id"] not in online_ids
        assert available["count"] == len(available["partners"])

    def test_active_order(self, api, client):
        partner = api.register_partner()
        idle = client.get(f"/api/v1/partners/{partner['partner_id']}/active-order")
        assert idle.status_code == 200
        assert idle.json() is None

        order = api.create_order()
        api.advance(order["order_id"], partner["partner_id"], until="pickup")

        active = client.get(f"/api/v1/partners/{partner['partner_id']}/active-order").json()
        assert active["order_id"] == order["order_id"]
        assert active["status"] == "pickup"


class TestLocationIngest:

    def test_ping_accepted_and_stored(self, api, client):
        partner = api.register_partner()

        response = api.ping(partner["partner_id"], 12.95, 77.61, speed=5.5)

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["location"]["latitude"] == 12.95
        stored = client.get(f"/api/v1/partners/{partner['partner_id']}").json()
        assert stored["current_location"]["speed"] == 5.5

    def test_out_of_range_ping_not_accepted(self, api):
        partner = api.register_partner()

        data = api.ping(partner["partner_id"], 123.0, 77.6).json()

        assert data["accepted"] is False
        assert "latitude" in data["reason"]
        assert data["location"] is None

    def test_out_of_order_ping_not_accepted(self, api, client):
        partner = api.register_partner()
        now = datetime.now(timezone.utc)
        api.ping(partner["partner_id"], 12.95, 77.61, timestamp=now.isoformat())

        data = api.ping(
            partner["partner_id"], 13.0, 77.0, timestamp=(now - timedelta(seconds=10)).isoformat()
        ).json()

        assert data["accepted"] is False
        stored = client.get(f"/api/v1/partners/{partner['partner_id']}").json()
        assert stored["current_location"]["latitude"] == 12.95

    def test_future_dated_ping_not_accepted(self, api, client):
        partner = api.register_partner()
        skewed = datetime.now(timezone.utc) + timedelta(hours=1)

        data = api.ping(partner["partner_id"], 13.0, 77.0, timestamp=skewed.isoformat()).json()
        assert data["accepted"] is False
        assert "ahead of server time" in data["reason"]

        # A real ping right after is still taken
        assert api.ping(partner["partner_id"], 12.95, 77.61).json()["accepted"] is True

    def test_ping_from_unknown_partner_is_404(self, api, assertions):
        assertions.assert_error(api.ping("dp_missing"), 404, "PARTNER_NOT_FOUND")

    def test_malformed_ping_is_422(self, client, api):
        partner = api.register_partner()

        response = client.post(
            f"/api/v1/partners/{partner['partner_id']}/location", json={"latitude": "north"}
        )

        assert response.status_code == 422

    def test_ping_does_not_touch_tracking_history(self, api, client):
        partner = api.register_partner()
        order = api.create_order()
        api.advance(order["order_id"], partner["partner_id"], until="assigned")

        for i in range(3):
            api.ping(partner["partner_id"], 12.9 + i / 100, 77.6)

        stored = client.get(f"/api/v1/orders/{order['order_id']}").json()
        assert len(stored["tracking_updates"]) == 2
