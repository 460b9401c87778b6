import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("ENV", "test")
# Module-level app in main.py must not touch /tmp during tests.
os.environ.setdefault("BILLING_DB_URL", "sqlite+pysqlite:///:memory:")

from apps.billing.app.config import Settings  # noqa: E402
from apps.billing.app.engine import BillingEngine  # noqa: E402
from apps.billing.app.main import create_app  # noqa: E402
from apps.billing.app.stores import DocumentStore, SqlStore  # noqa: E402

MOBILE = "9876543210"


class FixedClock:
    """
    Settable clock injected into stores so tests control `created_at`.
    """

    def __init__(self, iso: str = "2026-01-10T12:00:00+00:00"):
        self.now = datetime.fromisoformat(iso)

    def set(self, iso: str) -> None:
        self.now = datetime.fromisoformat(iso)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def sql_store(tmp_path, clock):
    store = SqlStore(f"sqlite+pysqlite:///{tmp_path / 'billing.db'}", clock=clock)
    store.bootstrap()
    yield store
    store.engine.dispose()


@pytest.fixture()
def document_store(tmp_path, clock):
    store = DocumentStore(tmp_path / "billing.json", clock=clock)
    store.bootstrap()
    return store


@pytest.fixture(params=["sql", "document"])
def store(request):
    """
    Each store-level test runs against both persistence strategies.
    """
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture()
def billing(store) -> BillingEngine:
    return BillingEngine(store, timeout_secs=5.0)


@pytest.fixture()
def client(billing):
    app = create_app(settings=Settings(env="test"), engine=billing)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def bill_body():
    return {
        "customer": MOBILE,
        "items": [
            {"name": "Paneer Tikka", "price": 180, "quantity": 2},
            {"name": "Butter Naan", "price": "35.50"},
            {"name": "Masala Chai", "price": 20.25, "qty": 3},
        ],
    }
