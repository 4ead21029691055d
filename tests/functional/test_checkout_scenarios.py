"""Parcours complets du checkout via l'API (passerelles simulées au niveau des clients HTTP)."""
import pytest

from farmvet.checkout.errors import GatewayError
from farmvet.payments import paymob_client, paypal_client


@pytest.fixture
def processors(monkeypatch):
    seen = {"paymob": [], "paypal": [], "capture": []}

    async def _paymob(**kwargs):
        seen["paymob"].append(kwargs)
        return {
            "url": "https://accept.paymob.com/api/acceptance/iframes/1?payment_token=pk",
            "paymentKey": "pk",
            "paymobOrderId": 4242,
            "amountCents": kwargs["amount_cents"],
        }

    async def _paypal_create(*, amount, currency, reference, transport=None):
        seen["paypal"].append({"amount": amount, "currency": currency, "reference": reference})
        return {"paypalOrderId": "PP-ORDER", "approvalUrl": "https://www.sandbox.paypal.com/checkoutnow?token=PP-ORDER"}

    async def _paypal_capture(order_id, transport=None):
        seen["capture"].append(order_id)
        return {"status": "COMPLETED", "captureId": "CAP-1", "raw": {"id": order_id, "status": "COMPLETED"}}

    monkeypatch.setattr(paymob_client, "create_payment_session", _paymob)
    monkeypatch.setattr(paypal_client, "create_order", _paypal_create)
    monkeypatch.setattr(paypal_client, "capture_order", _paypal_capture)
    return seen


def test_cash_on_delivery_order(client, processors, orders_repo, valid_shipping):
    r = client.post("/api/v1/checkout/attempts", json={
        "cartItems": [{"id": "p1", "name": "Feed", "price": 50, "quantity": 2}],
        "shipping": valid_shipping,
        "provider": "cod",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "completed"
    order = data["order"]
    assert order["paymentMethod"] == "cod"
    assert order["status"] == "pending"
    assert order["totals"]["total"] == 150.0
    assert len(order["statusHistory"]) == 1
    assert processors["paymob"] == [] and processors["paypal"] == []
    assert client.get(f"/api/v1/orders/{order['id']}").json()["id"] == order["id"]


def test_card_charge_follows_cart_not_client_amount(client, processors, orders_repo, valid_shipping):
    r = client.post("/api/paymob/session", json={
        "amount": 10,
        "cartItems": [{"id": "p1", "price": 125, "quantity": 2}],
        "form": valid_shipping,
    })
    assert r.status_code == 200
    assert processors["paymob"][0]["amount_cents"] == 25000
    assert r.json()["amountCents"] == 25000


def test_card_attempt_end_to_end(client, processors, orders_repo, valid_shipping):
    r = client.post("/api/v1/checkout/attempts", json={
        "cartItems": [{"id": "p1", "price": 125, "quantity": 2}],
        "shipping": valid_shipping,
        "provider": "card",
    })
    attempt = r.json()["attempt"]
    # Panier 250 + livraison 50: la livraison est une ligne Paymob à part entière
    assert processors["paymob"][0]["amount_cents"] == 30000
    assert processors["paymob"][0]["items"][-1]["name"] == "Livraison"
    assert processors["paymob"][0]["merchant_order_id"] == attempt["attemptId"]
    assert attempt["session"]["amountCents"] == 30000

    r = client.post(f"/api/v1/checkout/attempts/{attempt['attemptId']}/paymob", json={"status": "success", "transactionId": "trx-9"})
    order = r.json()["order"]
    assert order["paymentDetails"]["paymobOrderId"] == 4242
    assert order["paymentDetails"]["amountCents"] == round(order["totals"]["total"] * 100)


def test_success_after_failed_init_creates_no_order(client, monkeypatch, orders_repo, valid_shipping):
    async def _down(**kwargs):
        raise GatewayError("Invalid API key", 401)

    monkeypatch.setattr(paymob_client, "create_payment_session", _down)
    r = client.post("/api/v1/checkout/attempts", json={
        "cartItems": [{"id": "p1", "price": 125, "quantity": 1}],
        "shipping": valid_shipping,
        "provider": "card",
    })
    assert r.status_code == 400
    assert r.json()["kind"] == "gateway_init"
    attempt_id = r.json()["payload"]["attemptId"]

    r = client.post(f"/api/v1/checkout/attempts/{attempt_id}/paymob", json={"status": "success"})
    assert r.status_code == 400
    assert r.json()["kind"] == "validation"
    assert orders_repo.orders == {}


def test_paypal_cancel_keeps_form_and_creates_nothing(client, processors, orders_repo, valid_shipping):
    r = client.post("/api/v1/checkout/attempts", json={
        "cartItems": [{"id": "p1", "price": 150, "quantity": 2}],
        "shipping": valid_shipping,
        "provider": "paypal",
    })
    attempt = r.json()["attempt"]
    assert attempt["session"]["settlementAmount"] == "7.00"
    assert processors["paypal"][0]["currency"] == "USD"

    r = client.post(f"/api/v1/checkout/attempts/{attempt['attemptId']}/paypal/cancel")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "cancelled"
    assert body["attempt"]["draft"]["shipping"] == {**valid_shipping, "notes": ""}
    assert client.get("/api/v1/checkout/attempts/current").status_code == 404
    assert orders_repo.orders == {}
    assert processors["capture"] == []


def test_paypal_approve_end_to_end(client, processors, orders_repo, valid_shipping):
    r = client.post("/api/v1/checkout/attempts", json={
        "cartItems": [{"id": "p1", "price": 150, "quantity": 2}],
        "shipping": valid_shipping,
        "provider": "paypal",
    })
    attempt_id = r.json()["attempt"]["attemptId"]
    r = client.post(f"/api/v1/checkout/attempts/{attempt_id}/paypal/approve", json={"orderId": "PP-ORDER"})
    assert r.status_code == 200
    order = r.json()["order"]
    assert order["paymentDetails"]["paypalCaptureId"] == "CAP-1"
    assert processors["capture"] == ["PP-ORDER"]
    # Callback rejoué: même commande, aucune nouvelle capture
    again = client.post(f"/api/v1/checkout/attempts/{attempt_id}/paypal/approve", json={"orderId": "PP-ORDER"})
    assert again.json()["order"]["id"] == order["id"]
    assert processors["capture"] == ["PP-ORDER"]
    assert len(orders_repo.orders) == 1
