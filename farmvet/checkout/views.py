# module farmvet.checkout.views

"""Endpoints du checkout orchestré côté serveur (une tentative active par utilisateur).
- POST /attempts: valide le brouillon et ouvre la passerelle (COD: commande créée immédiatement).
- GET /attempts/current: tentative en cours (état, session, erreur).
- POST /attempts/{id}/paymob, /paypal/approve, /paypal/cancel, /paypal/error: callbacks passerelles.
- POST /attempts/{id}/cancel: fermeture de l'overlay, aucune commande.
- POST /attempts/{id}/finalize: réessaie uniquement la persistance après paiement confirmé.
Un callback d'une tentative supplantée répond 200 {"status": "ignored"}.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from farmvet.checkout.draft import build_draft
from farmvet.checkout.errors import CheckoutError, Err, ErrorKind, Ignored
from farmvet.checkout.orchestrator import CheckoutAttempt, CheckoutOrchestrator
from farmvet.checkout.session import Provider
from farmvet.payments.paymob_client import parse_paymob_redirect
from farmvet.payments.paypal_client import parse_paypal_redirect
from farmvet.utils.rate_limit import optional_rate_limit
from farmvet.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

# Registre des tentatives du process courant
orchestrator = CheckoutOrchestrator()


class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartAttemptRequest(_CamelBody):
    cart_items: List[Dict[str, Any]] = Field(default_factory=list)
    shipping: Dict[str, Any] = Field(default_factory=dict)
    provider: Provider = Provider.COD
    wallet_number: Optional[str] = None


class PaymobResultRequest(_CamelBody):
    status: Optional[str] = None
    txn_code: Optional[str] = None
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None


class PaypalApproveRequest(_CamelBody):
    order_id: Optional[str] = None
    capture_id: Optional[str] = None
    status: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None
    redirect_url: Optional[str] = None


class PaypalErrorRequest(_CamelBody):
    message: Optional[str] = None


def _owner(user: Dict[str, Any]) -> str:
    return str(user.get("id"))


def render_result(result) -> JSONResponse:
    """Ok/Err/Ignored -> réponse HTTP (Err est levé puis rendu par le handler CheckoutError)."""
    if isinstance(result, Ignored):
        return JSONResponse({"status": "ignored", "attemptId": result.attempt_id})
    if isinstance(result, Err):
        raise result.to_error()
    value = result.value
    if isinstance(value, CheckoutAttempt):
        return JSONResponse({"status": value.state.value, "attempt": value.public()})
    order_id = value.get("id")
    return JSONResponse({
        "status": "completed",
        "order": value,
        "clearCart": True,
        "redirect": f"/account/invoice/{order_id}",
    })


@router.post("/attempts", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def start_attempt(body: StartAttemptRequest, user: dict = Depends(require_user)):
    """Démarre une tentative: brouillon validé, session passerelle ouverte (ou commande COD)."""
    draft = build_draft(body.cart_items, body.shipping, user)
    result = await orchestrator.start(_owner(user), draft, body.provider, wallet_number=body.wallet_number)
    return render_result(result)


@router.get("/attempts/current")
async def current_attempt(user: dict = Depends(require_user)):
    attempt = orchestrator.store.get_active(_owner(user))
    if attempt is None:
        raise CheckoutError(ErrorKind.NOT_FOUND, "Aucune tentative de paiement en cours")
    return JSONResponse({"status": attempt.state.value, "attempt": attempt.public()})


@router.post("/attempts/{attempt_id}/paymob")
async def paymob_result(attempt_id: str, body: PaymobResultRequest, user: dict = Depends(require_user)):
    """Résultat Paymob: soit déjà interprété (status), soit l'URL de redirection brute."""
    if body.redirect_url:
        meta = parse_paymob_redirect(body.redirect_url)
    else:
        meta = {"status": body.status, "txnCode": body.txn_code, "transactionId": body.transaction_id}
    result = await orchestrator.handle_paymob_result(_owner(user), attempt_id, meta)
    return render_result(result)


@router.post("/attempts/{attempt_id}/paypal/approve")
async def paypal_approve(attempt_id: str, body: PaypalApproveRequest, user: dict = Depends(require_user)):
    """onApprove du SDK, ou URL de retour PayPal (redirectUrl: token = id de commande PayPal)."""
    if body.redirect_url:
        meta = parse_paypal_redirect(body.redirect_url)
        if meta["status"] == "cancel":
            return render_result(orchestrator.handle_paypal_cancel(_owner(user), attempt_id))
        if meta["status"] != "success":
            raise CheckoutError(ErrorKind.VALIDATION, "Retour PayPal incomplet: paiement non approuvé")
        capture = {"orderId": meta.get("token") or body.order_id}
    else:
        capture = body.model_dump(by_alias=True, exclude_none=True)
    result = await orchestrator.handle_paypal_approve(_owner(user), attempt_id, capture)
    return render_result(result)


@router.post("/attempts/{attempt_id}/paypal/cancel")
async def paypal_cancel(attempt_id: str, user: dict = Depends(require_user)):
    return render_result(orchestrator.handle_paypal_cancel(_owner(user), attempt_id))


@router.post("/attempts/{attempt_id}/paypal/error")
async def paypal_error(attempt_id: str, body: PaypalErrorRequest, user: dict = Depends(require_user)):
    return render_result(orchestrator.handle_paypal_error(_owner(user), attempt_id, body.message))


@router.post("/attempts/{attempt_id}/cancel")
async def cancel_attempt(attempt_id: str, user: dict = Depends(require_user)):
    return render_result(orchestrator.cancel(_owner(user), attempt_id))


@router.post("/attempts/{attempt_id}/finalize", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def finalize_attempt(attempt_id: str, user: dict = Depends(require_user)):
    """Réessaie la création de la commande avec la confirmation conservée (aucun nouveau débit)."""
    result = await orchestrator.retry_finalization(_owner(user), attempt_id)
    return render_result(result)
