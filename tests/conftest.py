import os
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Aucune connexion Redis pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from farmvet.app import app as fastapi_app
from farmvet.checkout import views as checkout_views
from farmvet.checkout.session import GatewaySession, Provider
from farmvet.checkout.errors import GatewayError
from farmvet.orders import repository as orders_repository
from farmvet.utils.security import require_admin, require_user

TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "name": "Test User",
    "role": "user",
    "metadata": {"full_name": "Test User"},
    "token": "fake-token",
}

ADMIN_USER: Dict[str, Any] = {"id": "admin-user-id", "email": "admin@example.com", "name": "Admin", "role": "admin"}

VALID_SHIPPING = {"fullName": "Mona Hassan", "phone": "01012345678", "address": "12 Nile St", "city": "Giza"}


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


class FakeOrdersRepository:
    """Tables orders/products/notifications en mémoire."""

    def __init__(self):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.notifications: List[Dict[str, Any]] = []
        self.insert_calls = 0
        self.fail_inserts = 0

    def insert_order(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.insert_calls += 1
        if self.fail_inserts > 0:
            self.fail_inserts -= 1
            return None
        row = {**payload, "id": f"ord-{len(self.orders) + 1}"}
        self.orders[row["id"]] = row
        return dict(row)

    def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        row = self.orders.get(order_id)
        return dict(row) if row else None

    def find_order_by_attempt(self, attempt_id: str) -> Optional[Dict[str, Any]]:
        return next((dict(r) for r in self.orders.values() if attempt_id and r.get("attempt_id") == attempt_id), None)

    def list_user_orders(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.orders.values() if r.get("user_id") == user_id][:limit]

    def list_orders(self, limit: int = 100, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.orders.values() if not status or r.get("status") == status][:limit]

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if order_id not in self.orders:
            return None
        self.orders[order_id].update(fields)
        return dict(self.orders[order_id])

    def adjust_stock(self, product_id: str, delta: int) -> bool:
        product = self.products.get(product_id)
        if not product:
            return False
        product["stock"] = max(0, int(product.get("stock") or 0) + delta)
        return True

    def insert_notification(self, payload: Dict[str, Any]) -> bool:
        self.notifications.append({**payload, "read": False})
        return True


class FakeGateways:
    """Sessions passerelles déterministes; compte les appels (aucun réseau)."""

    def __init__(self):
        self.paymob_calls = 0
        self.paypal_calls = 0
        self.capture_calls = 0
        self.fail_with: Optional[str] = None
        self.capture_status = "COMPLETED"

    async def open_paymob(self, attempt) -> GatewaySession:
        self.paymob_calls += 1
        if self.fail_with:
            raise GatewayError(self.fail_with, 401)
        return GatewaySession(
            provider=attempt.provider,
            order_ref=attempt.attempt_id,
            url=f"https://accept.paymob.com/api/acceptance/iframes/1?payment_token=tok-{self.paymob_calls}",
            paymob_order_id=1000 + self.paymob_calls,
            payment_key=f"tok-{self.paymob_calls}",
            amount_cents=25000,
        )

    async def open_paypal(self, attempt) -> GatewaySession:
        self.paypal_calls += 1
        if self.fail_with:
            raise GatewayError(self.fail_with, 401)
        return GatewaySession(
            provider=Provider.PAYPAL,
            order_ref=attempt.attempt_id,
            paypal_order_id=f"PP-{self.paypal_calls}",
            approval_url="https://www.sandbox.paypal.com/checkoutnow?token=PP",
            settlement_amount="6.00",
            settlement_currency="USD",
        )

    async def capture_paypal(self, order_id: str) -> Dict[str, Any]:
        self.capture_calls += 1
        return {"status": self.capture_status, "captureId": f"CAP-{order_id}", "raw": {"id": order_id, "status": self.capture_status}}


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


# Utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)


@pytest.fixture
def admin_client(app, client):
    app.dependency_overrides[require_admin] = lambda: dict(ADMIN_USER)
    yield client
    app.dependency_overrides.pop(require_admin, None)


# Aucun accès Supabase réel
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch):
    monkeypatch.setattr("farmvet.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("farmvet.infra.supabase_client.get_service_supabase", lambda: MagicMock())


@pytest.fixture(autouse=True)
def orders_repo(monkeypatch) -> FakeOrdersRepository:
    fake = FakeOrdersRepository()
    for name in (
        "insert_order",
        "get_order",
        "find_order_by_attempt",
        "list_user_orders",
        "list_orders",
        "update_order",
        "adjust_stock",
        "insert_notification",
    ):
        monkeypatch.setattr(orders_repository, name, getattr(fake, name))
    return fake


@pytest.fixture(autouse=True)
def _reset_attempts():
    checkout_views.orchestrator.store.clear()
    yield
    checkout_views.orchestrator.store.clear()


@pytest.fixture
def fake_gateways(monkeypatch) -> FakeGateways:
    fake = FakeGateways()
    monkeypatch.setattr(checkout_views.orchestrator, "gateways", fake)
    return fake


@pytest.fixture
def valid_shipping() -> Dict[str, str]:
    return dict(VALID_SHIPPING)


@pytest.fixture
def gateways() -> FakeGateways:
    """Passerelles factices pour un orchestrateur construit dans le test."""
    return FakeGateways()
