import inspect

import pytest

from farmvet.checkout.draft import build_draft
from farmvet.orders import service as orders_service
from farmvet.orders import views as orders_views


@pytest.fixture
def order(valid_shipping, orders_repo):
    user = {"id": "test-user", "email": "test@example.com", "name": "Test User"}
    draft = build_draft([{"id": "p1", "price": 50, "quantity": 2}], valid_shipping, user)
    return orders_service.create_order(draft, payment_method="paymob", payment_details={"type": "paymob"})


def test_my_orders(client, order):
    r = client.get("/api/v1/orders")
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["orders"]] == [order["id"]]


def test_order_detail(client, order):
    r = client.get(f"/api/v1/orders/{order['id']}")
    assert r.status_code == 200
    assert r.json()["reference"].startswith("AGRI-")
    assert client.get("/api/v1/orders/nope").status_code == 404


def test_confirm_delivery_flow(client, admin_client, order):
    assert client.post(f"/api/v1/orders/{order['id']}/confirm-delivery").status_code == 400
    r = admin_client.patch(f"/api/v1/admin/orders/{order['id']}/status", json={"status": "shipped"})
    assert r.status_code == 200
    r = client.post(f"/api/v1/orders/{order['id']}/confirm-delivery")
    assert r.status_code == 200
    assert r.json()["status"] == "delivered"


def test_admin_list_and_filter(admin_client, order):
    assert len(admin_client.get("/api/v1/admin/orders").json()["orders"]) == 1
    assert admin_client.get("/api/v1/admin/orders", params={"status": "delivered"}).json()["orders"] == []


def test_admin_cancel_prepaid_requires_refund_note(admin_client, order, orders_repo):
    url = f"/api/v1/admin/orders/{order['id']}/status"
    r = admin_client.patch(url, json={"status": "cancelled", "note": "Customer asked to cancel the order"})
    assert r.status_code == 400
    r = admin_client.patch(url, json={"status": "cancelled", "note": "Refund processed through Paymob today"})
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert orders_repo.notifications[-1]["type"] == "order_update"


def test_admin_comment(admin_client, order):
    r = admin_client.post(f"/api/v1/admin/orders/{order['id']}/comments", json={"text": "Packed"})
    assert r.status_code == 200
    assert r.json()["comments"][0]["author"] == "Admin"


def test_admin_routes_forbidden_for_users(client, monkeypatch):
    from farmvet.utils import security

    monkeypatch.setattr(security, "user_from_token", lambda token: {"id": "u1", "role": "user"})
    r = client.get("/api/v1/admin/orders", headers={"Authorization": "Bearer t"})
    assert r.status_code == 403


def test_order_routes_run_in_threadpool():
    # Repository Supabase synchrone: handlers déclarés en def, exécutés hors boucle
    for r in orders_views.router.routes + orders_views.admin_router.routes:
        assert not inspect.iscoroutinefunction(r.endpoint), r.path
