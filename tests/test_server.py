"""
API Tests

Exercises the HTTP surface with FastAPI's TestClient against a temporary
database: payload shapes, camelCase wire format and error mapping.
"""

import pytest
from fastapi.testclient import TestClient

from vectornode.db import get_repository
from vectornode.server import app


@pytest.fixture
def client(repo):
    app.dependency_overrides[get_repository] = lambda: repo
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_shipment(client, shipper_id="shipper-1"):
    response = client.post("/v1/shipments", json={
        "shipperId": shipper_id,
        "title": "Chilled produce",
        "origin": {"city": "Rotterdam", "country": "NL"},
        "destination": {"city": "Vienna", "country": "AT"},
        "cargoType": "refrigerated",
        "weightKg": 6400,
    })
    assert response.status_code == 201, response.text
    return response.json()


def put_carrier(client, carrier_id, **signals):
    body = {
        "companyName": carrier_id.title(),
        "rating": 4.8,
        "successRate": 95,
        "verificationCount": 5,
        "fleetSize": 24,
        "avgResponseMinutes": 10,
        "subscriptionTier": "LARGE_FLEET",
    }
    body.update(signals)
    response = client.put(f"/v1/carriers/{carrier_id}", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def post_bid(client, shipment_id, carrier_id, price):
    response = client.post("/v1/bids", json={
        "shipmentId": shipment_id,
        "carrierId": carrier_id,
        "totalPrice": price,
    })
    return response


class TestSystem:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["databaseConnected"] is True

    def test_root(self, client):
        assert client.get("/").json()["name"] == "VectorNode API"


class TestRankedBids:

    def test_full_flow(self, client):
        shipment = post_shipment(client)
        put_carrier(client, "carrier-a")
        put_carrier(client, "carrier-b", rating=3.0, successRate=0.7, verificationCount=1,
                    fleetSize=2, avgResponseMinutes=300, subscriptionTier="FREE_TRIAL")
        a = post_bid(client, shipment["id"], "carrier-a", 1000).json()
        b = post_bid(client, shipment["id"], "carrier-b", 900).json()

        response = client.get(f"/v1/shipments/{shipment['id']}/ranked-bids")

        assert response.status_code == 200
        body = response.json()
        assert body["pickupCity"] == "Rotterdam"
        assert body["deliveryCountry"] == "AT"
        assert [bid["id"] for bid in body["bids"]] == [a["id"], b["id"]]

        top = body["bids"][0]
        assert top["rank"] == "TOP_MATCH"
        assert top["carrier"]["companyName"] == "Carrier-A"
        assert top["insights"][0] == "Top-rated carrier (4.8/5)"
        assert 0 <= top["matchScore"] <= 100

        stats = body["matchingStats"]
        assert stats["totalBids"] == 2
        assert stats["priceRange"] == {"min": 900.0, "max": 1000.0}
        assert stats["confidence"] == "MEDIUM"
        assert isinstance(stats["averageScore"], int)

    def test_carrier_summary_shows_reputation(self, client):
        shipment = post_shipment(client)
        put_carrier(
            client,
            "carrier-a",
            verificationCount=None,
            verifications=["EMAIL_PHONE", "COMPANY_REG", "VAT_NIPT", "TRANSPORT_LICENSE", "INSURANCE"],
        )
        post_bid(client, shipment["id"], "carrier-a", 1000)

        body = client.get(f"/v1/shipments/{shipment['id']}/ranked-bids").json()

        carrier = body["bids"][0]["carrier"]
        assert carrier["successRate"] == 0.95
        assert carrier["verificationCount"] == 5
        assert len(carrier["verifications"]) == 5
        assert carrier["verifications"][0] == {"type": "EMAIL_PHONE", "status": "APPROVED"}

    def test_aware_bid_dates_against_naive_window(self, client):
        response = client.post("/v1/shipments", json={
            "shipperId": "shipper-1",
            "title": "Steel coils",
            "origin": {"city": "Linz", "country": "AT"},
            "destination": {"city": "Gdansk", "country": "PL"},
            "pickupWindow": {"earliest": "2026-11-01T00:00:00", "latest": "2026-11-03T00:00:00"},
        })
        assert response.status_code == 201, response.text
        shipment = response.json()
        put_carrier(client, "carrier-a")

        bid = client.post("/v1/bids", json={
            "shipmentId": shipment["id"],
            "carrierId": "carrier-a",
            "totalPrice": 1000,
            "estimatedPickupDate": "2026-11-02T08:00:00.000Z",
        })
        assert bid.status_code == 201, bid.text

        response = client.get(f"/v1/shipments/{shipment['id']}/ranked-bids")

        assert response.status_code == 200, response.text
        assert "Matches requested vehicle and schedule" in response.json()["bids"][0]["insights"]

    def test_no_bids(self, client):
        shipment = post_shipment(client)
        body = client.get(f"/v1/shipments/{shipment['id']}/ranked-bids").json()
        assert body["bids"] == []
        assert body["matchingStats"]["totalBids"] == 0
        assert body["matchingStats"]["priceRange"] is None

    def test_unknown_shipment_is_404(self, client):
        response = client.get("/v1/shipments/nope/ranked-bids")
        assert response.status_code == 404
        assert "error" in response.json()

    def test_other_shipper_is_404(self, client):
        shipment = post_shipment(client)
        response = client.get(
            f"/v1/shipments/{shipment['id']}/ranked-bids",
            headers={"X-Shipper-Id": "intruder"},
        )
        assert response.status_code == 404


class TestSelection:

    def test_select_then_conflict(self, client):
        shipment = post_shipment(client)
        put_carrier(client, "carrier-a")
        put_carrier(client, "carrier-b")
        a = post_bid(client, shipment["id"], "carrier-a", 1000).json()
        b = post_bid(client, shipment["id"], "carrier-b", 950).json()

        response = client.post(
            f"/v1/shipments/{shipment['id']}/select-bid",
            json={"bidId": a["id"]},
            headers={"X-Shipper-Id": "shipper-1"},
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["success"] is True
        assert body["shipment"]["status"] == "ASSIGNED"
        assert body["acceptedBid"]["status"] == "ACCEPTED"
        assert body["rejectedBidIds"] == [b["id"]]

        again = client.post(f"/v1/shipments/{shipment['id']}/select-bid", json={"bidId": b["id"]})
        assert again.status_code == 409
        assert again.json()["currentState"] == "ASSIGNED"

    def test_cancel(self, client):
        shipment = post_shipment(client)
        put_carrier(client, "carrier-a")
        a = post_bid(client, shipment["id"], "carrier-a", 1000).json()

        response = client.post(f"/v1/shipments/{shipment['id']}/cancel")

        assert response.status_code == 200
        assert response.json()["shipment"]["status"] == "CANCELLED"
        assert response.json()["rejectedBidIds"] == [a["id"]]


class TestBids:

    def test_negative_price_is_422(self, client):
        shipment = post_shipment(client)
        response = post_bid(client, shipment["id"], "carrier-a", -5)
        assert response.status_code == 422
        assert response.json()["field"] == "total_price"

    def test_non_finite_price_is_422(self, client):
        shipment = post_shipment(client)
        body = (
            '{"shipmentId": "%s", "carrierId": "carrier-a", "totalPrice": Infinity}'
            % shipment["id"]
        )
        response = client.post(
            "/v1/bids",
            content=body,
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422

        ranked = client.get(f"/v1/shipments/{shipment['id']}/ranked-bids")
        assert ranked.status_code == 200
        assert ranked.json()["bids"] == []

    def test_withdraw_and_list(self, client):
        shipment = post_shipment(client)
        put_carrier(client, "carrier-a")
        bid = post_bid(client, shipment["id"], "carrier-a", 1000).json()

        response = client.delete(f"/v1/bids/{bid['id']}", headers={"X-Carrier-Id": "carrier-a"})
        assert response.status_code == 200
        assert response.json()["status"] == "WITHDRAWN"

        again = client.delete(f"/v1/bids/{bid['id']}")
        assert again.status_code == 409
        assert again.json()["currentState"] == "WITHDRAWN"

        mine = client.get("/v1/bids/my-bids", params={"carrierId": "carrier-a"}).json()
        assert [b["id"] for b in mine] == [bid["id"]]
        pending = client.get("/v1/bids/my-bids", params={"carrierId": "carrier-a", "status": "PENDING"}).json()
        assert pending == []

    def test_expire_is_idempotent(self, client):
        shipment = post_shipment(client)
        bid = post_bid(client, shipment["id"], "carrier-a", 1000).json()

        first = client.post(f"/v1/bids/{bid['id']}/expire")
        second = client.post(f"/v1/bids/{bid['id']}/expire")

        assert first.json()["status"] == "EXPIRED"
        assert second.status_code == 200
        assert second.json()["status"] == "EXPIRED"

    def test_stats(self, client):
        shipment = post_shipment(client)
        post_bid(client, shipment["id"], "carrier-a", 1000)

        body = client.get("/v1/stats").json()
        assert body["shipments"]["open"] == 1
        assert body["bids"]["pending"] == 1
