"""
Adaptateur PayPal (REST v2 Orders): jeton OAuth, création et capture de commande.
Le montant reçu est déjà converti dans la devise de règlement.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from farmvet import config
from farmvet.checkout.errors import GatewayError

logger = logging.getLogger(__name__)

# module farmvet.payments.paypal_client
def is_configured() -> bool:
    return bool(config.PAYPAL_CLIENT_ID and config.PAYPAL_SECRET)

def _error_message(data: Dict[str, Any], status: int) -> str:
    return (
        data.get("message")
        or data.get("name")
        or data.get("error_description")
        or f"PayPal request failed ({status})"
    )

async def paypal_request(
    client: httpx.AsyncClient,
    path: str,
    *,
    method: str = "GET",
    token: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    headers = dict(kwargs.pop("headers", None) or {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        res = await client.request(method, f"{config.PAYPAL_BASE}{path}", headers=headers, **kwargs)
    except httpx.HTTPError as e:
        logger.exception("paypal.request network error path=%s", path)
        raise GatewayError(f"PayPal injoignable: {e}")
    try:
        data = res.json() if res.content else {}
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {"data": data}
    if res.is_error:
        raise GatewayError(_error_message(data, res.status_code), res.status_code, data)
    return data

async def get_access_token(client: httpx.AsyncClient) -> str:
    data = await paypal_request(
        client,
        "/v1/oauth2/token",
        method="POST",
        auth=(config.PAYPAL_CLIENT_ID, config.PAYPAL_SECRET),
        data={"grant_type": "client_credentials"},
    )
    token = data.get("access_token")
    if not token:
        raise GatewayError("Failed to obtain PayPal access token", payload=data)
    return token

async def create_order(
    *,
    amount: Any,
    currency: str,
    reference: Optional[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Crée une commande PayPal (intent CAPTURE).
    Retour: {paypalOrderId, approvalUrl}
    """
    body = {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "reference_id": reference,
                "amount": {"value": f"{float(amount or 0):.2f}", "currency_code": currency},
            }
        ],
        "application_context": {
            "return_url": config.PAYPAL_RETURN_URL,
            "cancel_url": config.PAYPAL_CANCEL_URL,
            "user_action": "PAY_NOW",
            "shipping_preference": "NO_SHIPPING",
        },
    }
    async with httpx.AsyncClient(timeout=config.GATEWAY_TIMEOUT_SECONDS, transport=transport) as client:
        token = await get_access_token(client)
        order = await paypal_request(client, "/v2/checkout/orders", method="POST", token=token, json=body)
    approval = next((link.get("href") for link in order.get("links") or [] if link.get("rel") == "approve"), None)
    logger.info("paypal.order created id=%s reference=%s", order.get("id"), reference)
    return {"paypalOrderId": order.get("id"), "approvalUrl": approval}

def extract_capture_id(capture: Dict[str, Any]) -> Optional[str]:
    units = capture.get("purchase_units") or [{}]
    payments = (units[0] or {}).get("payments") or {}
    for key in ("captures", "authorizations"):
        entries = payments.get(key) or []
        if entries and entries[0].get("id"):
            return entries[0]["id"]
    return None

async def capture_order(order_id: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    """
    Capture une commande PayPal approuvée.
    Retour: {status, captureId, raw}
    """
    if not order_id:
        raise GatewayError("Missing order id")
    async with httpx.AsyncClient(timeout=config.GATEWAY_TIMEOUT_SECONDS, transport=transport) as client:
        token = await get_access_token(client)
        capture = await paypal_request(
            client,
            f"/v2/checkout/orders/{order_id}/capture",
            method="POST",
            token=token,
            headers={"Content-Type": "application/json"},
        )
    return {"status": capture.get("status"), "captureId": extract_capture_id(capture), "raw": capture}

def parse_paypal_redirect(url: str = "") -> Dict[str, Any]:
    """
    Interprète l'URL de retour PayPal.
    - status=cancel -> "cancel"; status=success avec PayerID -> "success"
    - sinon repli sur le motif de l'URL, "pending" par défaut
    """
    params = {k: v[0] for k, v in parse_qs(urlparse(url or "").query).items() if v}
    token = params.get("token")
    payer = params.get("PayerID") or params.get("payer_id")
    status = params.get("status")
    lower = (url or "").lower()

    if status == "cancel":
        return {"status": "cancel", "token": token, "payer": payer}
    if status == "success" and payer:
        return {"status": "success", "token": token, "payer": payer}
    if "cancel" in lower:
        return {"status": "cancel", "token": token, "payer": payer}
    if payer or "success" in lower:
        return {"status": "success", "token": token, "payer": payer}
    return {"status": "pending", "token": token, "payer": payer}
