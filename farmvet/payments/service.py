"""
Cas d'usage 'payments': orchestre réconciliation des montants et clients passerelles.
La réconciliation a toujours lieu avant l'ouverture d'une session.
"""
import logging
from typing import Any, Dict, List, Optional

from farmvet import config
from . import amounts
from . import paymob_client
from . import paypal_client

logger = logging.getLogger(__name__)

async def create_paymob_session(
    *,
    amount: Any = None,
    cart_items: Optional[List[Dict[str, Any]]] = None,
    form: Optional[Dict[str, Any]] = None,
    user: Optional[Dict[str, Any]] = None,
    merchant_order_id: Optional[str] = None,
    currency: Optional[str] = None,
    wallet_number: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Ouvre une session Paymob (carte ou wallet) pour le montant réconcilié.
    - amount_cents = calculate_amount_cents(amount, cart_items): le panier fait foi
    - Retour: {url, orderRef, paymobOrderId, paymentKey, amountCents}
    """
    amount_cents = amounts.calculate_amount_cents(amount, cart_items)
    requested = amounts.to_cents(amount) if amount is not None else None
    if requested is not None and requested < amount_cents and cart_items:
        logger.warning(
            "payments.paymob reconciled amount up requested=%s charged=%s ref=%s",
            requested, amount_cents, merchant_order_id,
        )
    session = await paymob_client.create_payment_session(
        amount_cents=amount_cents,
        currency=currency or config.PAYMOB_CURRENCY,
        items=amounts.paymob_items(cart_items, amount_cents),
        billing_data=amounts.billing_data(form, user),
        merchant_order_id=merchant_order_id,
        wallet_number=wallet_number,
    )
    return {**session, "orderRef": merchant_order_id}

async def create_paypal_order(*, amount_egp: Any, reference: Optional[str], currency: Optional[str] = None) -> Dict[str, Any]:
    """
    Crée une commande PayPal après conversion EGP -> devise de règlement (taux fixe).
    Retour: {paypalOrderId, approvalUrl, amount, currency}
    """
    settlement_currency = currency or config.PAYPAL_CURRENCY
    settlement = amounts.to_settlement_amount(amount_egp, settlement_currency)
    order = await paypal_client.create_order(amount=settlement, currency=settlement_currency, reference=reference)
    return {**order, "amount": str(settlement), "currency": settlement_currency}

async def capture_paypal_order(order_id: str) -> Dict[str, Any]:
    return await paypal_client.capture_order(order_id)

def gateways_status() -> Dict[str, bool]:
    """Providers configurés (booléens uniquement, aucun secret)."""
    return {
        "cod": True,
        "card": paymob_client.is_configured(),
        "wallet": paymob_client.is_configured(wallet=True),
        "paypal": paypal_client.is_configured(),
    }
