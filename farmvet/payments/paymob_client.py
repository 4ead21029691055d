"""
Adaptateur Paymob: centralise les appels et la configuration Paymob (Accept API).
Flux carte: auth token -> commande -> payment key -> URL d'iframe.
Flux wallet: auth token -> commande -> payment key (intégration wallet) -> pay -> redirect_url.
La clé API n'est jamais exposée au client.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from farmvet import config
from farmvet.checkout.errors import GatewayError

logger = logging.getLogger(__name__)

SUCCESS_CODES = {"APPROVED", "00", "0"}
PENDING_CODES = {"10"}

# module farmvet.payments.paymob_client
def is_configured(wallet: bool = False) -> bool:
    integration = config.PAYMOB_WALLET_INTEGRATION_ID if wallet else config.PAYMOB_CARD_INTEGRATION_ID
    return bool(config.PAYMOB_API_KEY and integration and (wallet or config.PAYMOB_IFRAME_ID))

def _error_message(data: Dict[str, Any], status: int) -> str:
    return (
        data.get("message")
        or data.get("detail")
        or data.get("error_msg")
        or f"Paymob request failed ({status})"
    )

async def paymob_request(client: httpx.AsyncClient, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST JSON vers l'API Paymob.
    - Corps non JSON toléré ({}).
    - Statut non-2xx: GatewayError avec le message Paymob et le payload brut.
    """
    try:
        res = await client.post(f"{config.PAYMOB_API_BASE}{path}", json=payload)
    except httpx.HTTPError as e:
        logger.exception("paymob.request network error path=%s", path)
        raise GatewayError(f"Paymob injoignable: {e}")
    try:
        data = res.json() if res.content else {}
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {"data": data}
    if res.is_error:
        raise GatewayError(_error_message(data, res.status_code), res.status_code, data)
    return data

def _integration_id(raw: Any) -> int:
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        raise GatewayError("Paymob integration id invalide")

def iframe_url(payment_token: str) -> str:
    return f"{config.PAYMOB_API_BASE}/acceptance/iframes/{config.PAYMOB_IFRAME_ID}?payment_token={payment_token}"

async def create_payment_session(
    *,
    amount_cents: int,
    currency: str,
    items: List[Dict[str, Any]],
    billing_data: Dict[str, Any],
    merchant_order_id: Optional[str] = None,
    wallet_number: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Ouvre une session de paiement hébergée Paymob pour un montant déjà réconcilié.
    - wallet_number fourni: intégration wallet, URL = redirect_url du paiement wallet
    - sinon: intégration carte, URL = iframe
    Retour: {url, paymentKey, paymobOrderId, amountCents}
    """
    wallet = bool(wallet_number)
    integration_id = _integration_id(config.PAYMOB_WALLET_INTEGRATION_ID if wallet else config.PAYMOB_CARD_INTEGRATION_ID)
    async with httpx.AsyncClient(timeout=config.GATEWAY_TIMEOUT_SECONDS, transport=transport) as client:
        auth = await paymob_request(client, "/auth/tokens", {"api_key": config.PAYMOB_API_KEY})
        auth_token = auth.get("token")
        if not auth_token:
            raise GatewayError("Failed to obtain Paymob auth token", payload=auth)

        order_payload: Dict[str, Any] = {
            "auth_token": auth_token,
            "delivery_needed": "false",
            "amount_cents": amount_cents,
            "currency": currency,
            "items": items,
        }
        if merchant_order_id:
            order_payload["merchant_order_id"] = merchant_order_id
        order = await paymob_request(client, "/ecommerce/orders", order_payload)

        payment = await paymob_request(client, "/acceptance/payment_keys", {
            "auth_token": auth_token,
            "amount_cents": amount_cents,
            "currency": currency,
            "order_id": order.get("id"),
            "integration_id": integration_id,
            "billing_data": billing_data,
            "lock_order_when_paid": True,
        })
        payment_token = payment.get("token")
        if not payment_token:
            raise GatewayError("Failed to obtain Paymob payment key", payload=payment)

        if wallet:
            pay = await paymob_request(client, "/acceptance/payments/pay", {
                "source": {"identifier": wallet_number, "subtype": "WALLET"},
                "payment_token": payment_token,
            })
            url = pay.get("redirect_url") or pay.get("iframe_redirection_url")
            if not url:
                raise GatewayError("Paymob wallet redirect URL missing", payload=pay)
        else:
            url = iframe_url(payment_token)

    logger.info("paymob.session created order_id=%s amount_cents=%s wallet=%s", order.get("id"), amount_cents, wallet)
    return {
        "url": url,
        "paymentKey": payment_token,
        "paymobOrderId": order.get("id"),
        "amountCents": amount_cents,
    }

def parse_paymob_redirect(source: Any) -> Dict[str, Any]:
    """
    Interprète le retour Paymob (URL de redirection ou dict de paramètres).
    - success=true ou txn_response_code dans SUCCESS_CODES -> "success"
    - pending=true ou code dans PENDING_CODES -> "pending"
    - sinon "failed"; entrée vide -> "unknown"
    """
    if not source:
        return {"status": "unknown"}
    if isinstance(source, str):
        params = {k: v[0] for k, v in parse_qs(urlparse(source).query).items() if v}
        raw_url = source
    else:
        params = {k: str(v) for k, v in dict(source).items() if v is not None}
        raw_url = None
    success_flag = (params.get("success") or "").lower()
    pending_flag = (params.get("pending") or "").lower()
    txn_code = params.get("txn_response_code")
    transaction_id = params.get("id") or params.get("transaction_id")

    if success_flag == "true" or txn_code in SUCCESS_CODES:
        status = "success"
    elif pending_flag == "true" or txn_code in PENDING_CODES:
        status = "pending"
    else:
        status = "failed"
    return {"status": status, "txnCode": txn_code, "transactionId": transaction_id, "rawUrl": raw_url}
