# module farmvet.payments.views
"""Endpoints proxy des passerelles (consommés par le storefront).
- /api/paymob/session: session hébergée Paymob (carte ou wallet) pour un montant réconcilié.
- /api/paymob/card-payment, /api/paymob/wallet-payment: alias historiques du client React.
- /api/paypal/create-order, /api/paypal/capture-order: flux PayPal v2.
Erreurs processeur: 400 {message, payload}.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from farmvet.checkout.errors import GatewayError
from farmvet.payments import service as payments_service
from farmvet.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Payments proxy"])


class PaymobSessionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    amount: Optional[float] = Field(default=None, allow_inf_nan=False)
    currency: Optional[str] = None
    cart_items: List[Dict[str, Any]] = Field(default_factory=list)
    form: Dict[str, Any] = Field(default_factory=dict)
    user: Dict[str, Any] = Field(default_factory=dict)
    merchant_order_id: Optional[str] = None
    wallet: bool = False
    wallet_number: Optional[str] = None


class PaypalCreateRequest(BaseModel):
    amount: float = Field(default=0, allow_inf_nan=False)
    reference: Optional[str] = None
    currency: Optional[str] = None


class PaypalCaptureRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str = ""
    reference: Optional[str] = None


def _gateway_error_response(e: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": e.message, "payload": e.payload})


async def _paymob_session(body: PaymobSessionRequest, wallet: bool) -> JSONResponse:
    if wallet and not body.wallet_number:
        return JSONResponse(status_code=400, content={"message": "Numéro de wallet requis"})
    try:
        session = await payments_service.create_paymob_session(
            amount=body.amount,
            cart_items=body.cart_items,
            form=body.form,
            user=body.user,
            merchant_order_id=body.merchant_order_id,
            currency=body.currency,
            wallet_number=body.wallet_number if wallet else None,
        )
    except GatewayError as e:
        logger.exception("Erreur paymob_session ref=%s", body.merchant_order_id)
        return _gateway_error_response(e)
    # paymentUrl: clé attendue par l'ancien client /card-payment
    return JSONResponse({**session, "paymentUrl": session.get("url"), "wallet": wallet})


@router.post("/paymob/session", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def paymob_session(body: PaymobSessionRequest):
    """Crée une session Paymob; le montant débité est recalculé depuis cartItems."""
    return await _paymob_session(body, wallet=body.wallet)


@router.post("/paymob/card-payment", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def paymob_card_payment(body: PaymobSessionRequest):
    return await _paymob_session(body, wallet=False)


@router.post("/paymob/wallet-payment", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def paymob_wallet_payment(body: PaymobSessionRequest):
    return await _paymob_session(body, wallet=True)


@router.post("/paypal/create-order", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def paypal_create_order(body: PaypalCreateRequest):
    """Crée une commande PayPal; `amount` est exprimé en EGP puis converti au taux fixe."""
    try:
        order = await payments_service.create_paypal_order(
            amount_egp=body.amount, reference=body.reference, currency=body.currency
        )
    except GatewayError as e:
        logger.exception("Erreur paypal_create_order ref=%s", body.reference)
        return _gateway_error_response(e)
    return JSONResponse({**order, "reference": body.reference})


@router.post("/paypal/capture-order")
async def paypal_capture_order(body: PaypalCaptureRequest):
    if not body.order_id:
        return JSONResponse(status_code=400, content={"message": "Missing order id"})
    try:
        capture = await payments_service.capture_paypal_order(body.order_id)
    except GatewayError as e:
        logger.exception("Erreur paypal_capture_order order_id=%s", body.order_id)
        return _gateway_error_response(e)
    return JSONResponse(capture)
