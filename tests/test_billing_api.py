from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from apps.billing.app.config import Settings
from apps.billing.app.engine import BillingEngine
from apps.billing.app.errors import StorageError, Timeout
from apps.billing.app.main import create_app

MOBILE = "9876543210"


def test_create_bill_returns_invoice_id_and_lookup_matches(client, bill_body):
    resp = client.post("/api/bill", json=bill_body)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Bill created"
    inv = body["invoiceId"]
    assert isinstance(inv, str) and inv

    resp = client.get(f"/api/bill/{inv}")
    assert resp.status_code == 200
    bill = resp.json()
    assert bill["id"] == inv and bill["invoiceId"] == inv
    assert bill["customer"] == MOBILE and bill["mobile"] == MOBILE
    assert bill["items"] == [
        {"name": "Paneer Tikka", "price": 180.0, "price_cents": 18000, "quantity": 2, "item_name": "Paneer Tikka", "qty": 2},
        {"name": "Butter Naan", "price": 35.5, "price_cents": 3550, "quantity": 1, "item_name": "Butter Naan", "qty": 1},
        {"name": "Masala Chai", "price": 20.25, "price_cents": 2025, "quantity": 3, "item_name": "Masala Chai", "qty": 3},
    ]
    assert bill["total_cents"] == 45625
    assert bill["total"] == 456.25
    assert bill["created_at"].startswith("2026-01-10T12:00:00")


def test_create_bill_accepts_original_field_names(client):
    resp = client.post(
        "/api/bill",
        json={"mobile": MOBILE, "items": [{"name": "Thali", "price": 250, "qty": 2}], "total": 480},
    )
    assert resp.status_code == 200
    bill = client.get(f"/api/bill/{resp.json()['invoiceId']}").json()
    assert bill["customer"] == MOBILE
    assert bill["items"][0]["quantity"] == 2
    # Read side echoes the same names back.
    assert bill["mobile"] == MOBILE
    assert bill["items"][0]["item_name"] == "Thali" and bill["items"][0]["qty"] == 2
    # Caller total is stored as given.
    assert bill["total_cents"] == 48000


@pytest.mark.parametrize(
    "patch, message",
    [
        ({"customer": None}, "customer identifier required"),
        ({"customer": "12345"}, "customer identifier required"),
        ({"items": []}, "items required"),
        ({"items": "Paneer"}, "items required"),
        ({"items": [{"price": 10}]}, "item 1: name required"),
        ({"items": [{"name": "Tea", "price": -5}]}, "item 1: price must be a non-negative number"),
        ({"items": [{"name": "Tea", "price": 5, "quantity": 0}]}, "item 1: quantity must be a positive integer"),
        ({"total": -1}, "total must be a non-negative number"),
        ({"total": "1e17"}, "total must be a non-negative number"),
        ({"items": [{"name": "Feast", "price": "100000000000000000"}]}, "item 1: price must be a non-negative number"),
        ({"items": [{"name": "Feast", "price": 1, "qty": 10**19}]}, "item 1: quantity must be a positive integer"),
        (
            {"items": [{"name": "Feast", "price": "92233720368547758", "quantity": 2}]},
            "total exceeds the maximum amount",
        ),
    ],
)
def test_invalid_bill_is_rejected_and_not_persisted(client, bill_body, patch, message):
    resp = client.post("/api/bill", json={**bill_body, **patch})
    assert resp.status_code == 400
    assert resp.json() == {"message": message}
    assert client.get("/api/report").json()["count"] == 0


@pytest.mark.parametrize("inv", ["424242", "abc", "0"])
def test_unknown_invoice_is_404(client, bill_body, inv):
    client.post("/api/bill", json=bill_body)
    resp = client.get(f"/api/bill/{inv}")
    assert resp.status_code == 404
    assert resp.json() == {"message": "invoice not found"}


def test_repeated_lookups_are_identical(client, bill_body):
    inv = client.post("/api/bill", json=bill_body).json()["invoiceId"]
    first = client.get(f"/api/bill/{inv}").json()
    second = client.get(f"/api/bill/{inv}").json()
    assert first == second


def test_report_by_day_and_overall(client, clock, bill_body):
    clock.set("2026-01-10T10:00:00+00:00")
    a = client.post("/api/bill", json={**bill_body, "total": 100}).json()["invoiceId"]
    b = client.post("/api/bill", json={**bill_body, "total": "12.34"}).json()["invoiceId"]
    clock.set("2026-01-11T10:00:00+00:00")
    c = client.post("/api/bill", json=bill_body).json()["invoiceId"]

    day = client.get("/api/report", params={"date": "2026-01-10"}).json()
    assert day["date"] == "2026-01-10"
    assert [x["invoiceId"] for x in day["bills"]] == [a, b]
    assert day["count"] == 2
    assert day["total_sales_cents"] == 11234
    assert day["totalSales"] == 112.34

    everything = client.get("/api/report").json()
    assert everything["date"] is None
    assert [x["invoiceId"] for x in everything["bills"]] == [a, b, c]
    assert everything["total_sales_cents"] == 11234 + 45625


@pytest.mark.parametrize("date", ["10-01-2026", "2026-13-45"])
def test_report_bad_date_is_400(client, date):
    resp = client.get("/api/report", params={"date": date})
    assert resp.status_code == 400
    assert resp.json() == {"message": "date must be YYYY-MM-DD"}


def test_menu_crud_flow(client):
    resp = client.post("/api/menu", json={"name": "  Veg Biryani ", "price": "199.5"})
    assert resp.status_code == 200
    saved = resp.json()
    assert saved["message"] == "Item saved"
    item = saved["item"]
    assert item["name"] == "Veg Biryani"
    assert item["price_cents"] == 19950 and item["price"] == 199.5

    client.post("/api/menu", json={"name": "Jeera Rice", "price": 90})
    names = [m["name"] for m in client.get("/api/menu").json()]
    assert names == ["Jeera Rice", "Veg Biryani"]

    resp = client.put(f"/api/menu/{item['id']}", json={"price": 210})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Item updated"
    assert resp.json()["item"]["name"] == "Veg Biryani"
    assert resp.json()["item"]["price_cents"] == 21000

    resp = client.delete(f"/api/menu/{item['id']}")
    assert resp.json() == {"message": "Item deleted"}
    assert [m["name"] for m in client.get("/api/menu").json()] == ["Jeera Rice"]
    # Deleting again is not an error.
    assert client.delete(f"/api/menu/{item['id']}").status_code == 200


@pytest.mark.parametrize(
    "body, message",
    [
        ({"price": 10}, "Name is required"),
        ({"name": "   ", "price": 10}, "Name is required"),
        ({"name": "Tea"}, "Valid price is required"),
        ({"name": "Tea", "price": 0}, "Valid price is required"),
        ({"name": "Tea", "price": "free"}, "Valid price is required"),
        ({"name": "Tea", "price": "100000000000000000"}, "Valid price is required"),
    ],
)
def test_menu_validation(client, body, message):
    resp = client.post("/api/menu", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"message": message}
    assert client.get("/api/menu").json() == []


def test_menu_update_unknown_item_is_404(client):
    resp = client.put("/api/menu/424242", json={"name": "Ghost"})
    assert resp.status_code == 404
    assert resp.json() == {"message": "Item not found"}


def test_health_and_root_report_store(client, store):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["store"] == store.kind
    assert body["service"] == "Restaurant POS Billing"

    root = client.get("/")
    assert root.status_code == 200
    assert store.kind in root.text


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "rid-123"})
    assert resp.headers["X-Request-ID"] == "rid-123"
    assert client.get("/health").headers.get("X-Request-ID")


class _FailingStore:
    kind = "failing"

    def __init__(self, exc: Exception):
        self.exc = exc

    def bootstrap(self):
        pass

    def insert_bill(self, draft, total_cents, guard=None):
        raise self.exc

    def get_bill(self, bill_id):
        raise self.exc

    def scan_bills(self):
        raise self.exc


@pytest.mark.parametrize(
    "exc",
    [StorageError("bill insert failed: OperationalError at bills"), Timeout("create_bill exceeded 5s")],
)
def test_storage_failures_are_generic_500(exc, bill_body):
    app = create_app(settings=Settings(env="test"), engine=BillingEngine(_FailingStore(exc)))
    with TestClient(app) as c:
        resp = c.post("/api/bill", json=bill_body, headers={"X-Request-ID": "rid-500"})
        assert resp.status_code == 500
        assert resp.json() == {"message": "Failed to create bill", "request_id": "rid-500"}

        resp = c.get("/api/report")
        assert resp.status_code == 500
        assert resp.json()["message"] == "Storage unavailable"
        assert "bills" not in resp.text


def test_unhandled_error_body_carries_request_id(billing):
    app = create_app(settings=Settings(env="test"), engine=billing)

    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as c:
        resp = c.get("/api/explode", headers={"X-Request-ID": "rid-boom"})
        assert resp.status_code == 500
        assert resp.json() == {"message": "internal error", "request_id": "rid-boom"}
        assert "boom" not in resp.text

        generated = c.get("/api/explode").json()
        assert generated["message"] == "internal error"
        assert generated["request_id"]
