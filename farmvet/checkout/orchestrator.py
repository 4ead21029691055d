"""
Orchestration du checkout: une tentative en vol par client, de l'ouverture de la passerelle
jusqu'à la finalisation de la commande.

Règles:
- Chaque tentative porte son propre contexte (CheckoutAttempt, clé attempt_id).
- Une nouvelle tentative remplace la précédente; les callbacks tardifs de l'ancienne
  sont écartés (Ignored), sans effet ni erreur.
- La commande n'est persistée qu'après un succès passerelle (immédiat pour COD).
- Si la persistance échoue après paiement, la confirmation reste en mémoire et
  retry_finalization() ne fait que réessayer l'écriture, jamais le paiement.
"""
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from farmvet.checkout.draft import OrderDraft
from farmvet.checkout.errors import CheckoutError, Err, ErrorKind, Ignored, Ok, Result
from farmvet.checkout.session import (
    GatewayEvent,
    GatewaySession,
    GatewayState,
    Provider,
    session_status,
    transition,
)
from farmvet.orders import service as orders_service
from farmvet.payments import service as payments_service

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {
    Provider.COD: ("cod", "Paiement à la livraison"),
    Provider.CARD: ("paymob", "Carte bancaire (Paymob)"),
    Provider.WALLET: ("paymob_wallet", "Wallet mobile (Paymob)"),
    Provider.PAYPAL: ("paypal", "PayPal"),
}

PAYPAL_CAPTURED_STATUSES = {"COMPLETED", "APPROVED"}


def new_attempt_id() -> str:
    return f"WEB-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class CheckoutAttempt(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    attempt_id: str
    owner_id: str
    draft: OrderDraft
    provider: Provider
    state: GatewayState = GatewayState.IDLE
    session: Optional[GatewaySession] = None
    wallet_number: Optional[str] = None
    confirmation: Optional[Dict[str, Any]] = None
    order: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def apply(self, event: GatewayEvent) -> None:
        self.state = transition(self.state, event)
        if self.session is not None:
            self.session.status = session_status(self.state)

    def public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"owner_id"})


class AttemptStore:
    """Registre mono-propriétaire: au plus une tentative active par client."""

    def __init__(self):
        self._attempts: Dict[str, CheckoutAttempt] = {}

    def put(self, attempt: CheckoutAttempt) -> Optional[CheckoutAttempt]:
        previous = self._attempts.get(attempt.owner_id)
        self._attempts[attempt.owner_id] = attempt
        return previous

    def get_active(self, owner_id: str) -> Optional[CheckoutAttempt]:
        return self._attempts.get(owner_id)

    def is_active(self, owner_id: str, attempt_id: str) -> bool:
        current = self._attempts.get(owner_id)
        return current is not None and current.attempt_id == attempt_id

    def discard(self, owner_id: str, attempt_id: str) -> None:
        if self.is_active(owner_id, attempt_id):
            del self._attempts[owner_id]

    def clear(self) -> None:
        self._attempts.clear()


class PaymentGateways:
    """Fabrique de sessions: délègue à payments.service (réconciliation puis passerelle)."""

    async def open_paymob(self, attempt: CheckoutAttempt) -> GatewaySession:
        draft = attempt.draft
        items = [item.model_dump(by_alias=True) for item in draft.cart_items]
        # La livraison est débitée comme une ligne: amountCents == totals.total
        if draft.summary.shipping > 0:
            items.append({"id": "shipping", "name": "Livraison", "price": draft.summary.shipping, "quantity": 1})
        data = await payments_service.create_paymob_session(
            amount=draft.summary.total,
            cart_items=items,
            form=draft.shipping.model_dump(by_alias=True),
            user={"email": draft.user_email, "displayName": draft.user_name},
            merchant_order_id=attempt.attempt_id,
            wallet_number=attempt.wallet_number,
        )
        return GatewaySession(
            provider=attempt.provider,
            order_ref=attempt.attempt_id,
            url=data.get("url"),
            paymob_order_id=data.get("paymobOrderId"),
            payment_key=data.get("paymentKey"),
            amount_cents=data.get("amountCents"),
        )

    async def open_paypal(self, attempt: CheckoutAttempt) -> GatewaySession:
        data = await payments_service.create_paypal_order(
            amount_egp=attempt.draft.summary.total, reference=attempt.attempt_id
        )
        return GatewaySession(
            provider=Provider.PAYPAL,
            order_ref=attempt.attempt_id,
            paypal_order_id=data.get("paypalOrderId"),
            approval_url=data.get("approvalUrl"),
            settlement_amount=data.get("amount"),
            settlement_currency=data.get("currency"),
        )

    async def capture_paypal(self, order_id: str) -> Dict[str, Any]:
        return await payments_service.capture_paypal_order(order_id)


class CheckoutOrchestrator:
    def __init__(
        self,
        store: Optional[AttemptStore] = None,
        gateways: Optional[PaymentGateways] = None,
        finalizer: Optional[Callable[..., Optional[Dict[str, Any]]]] = None,
    ):
        self.store = store or AttemptStore()
        self.gateways = gateways or PaymentGateways()
        self.finalizer = finalizer or orders_service.create_order

    # --- Ouverture -------------------------------------------------------

    async def start(
        self,
        owner_id: str,
        draft: OrderDraft,
        provider: Provider,
        wallet_number: Optional[str] = None,
    ) -> Result:
        """
        Démarre une tentative pour `owner_id` (remplace toute tentative précédente).
        - COD: succès immédiat puis finalisation.
        - Carte/wallet/PayPal: ouvre la session; Ok(attempt) en état awaiting.
        - Échec d'initialisation: Err(GATEWAY_INIT), brouillon conservé sur la tentative.
        """
        if not draft.cart_items:
            return Err(ErrorKind.VALIDATION, "Votre panier est vide")
        if provider == Provider.WALLET and not wallet_number:
            return Err(ErrorKind.VALIDATION, "Numéro de wallet requis")

        attempt = CheckoutAttempt(
            attempt_id=new_attempt_id(),
            owner_id=owner_id,
            draft=draft,
            provider=provider,
            wallet_number=wallet_number,
        )
        previous = self.store.put(attempt)
        if previous is not None and previous.order is None:
            logger.info("checkout.attempt superseded owner=%s previous=%s", owner_id, previous.attempt_id)
        attempt.apply(GatewayEvent.OPEN)
        logger.info("checkout.attempt opening id=%s provider=%s", attempt.attempt_id, provider.value)

        if provider == Provider.COD:
            attempt.session = GatewaySession(provider=Provider.COD, order_ref=attempt.attempt_id)
            attempt.apply(GatewayEvent.APPROVE)
            label = PAYMENT_METHODS[Provider.COD][1]
            attempt.confirmation = {"type": "cod", "label": label, "provider": "cod"}
            return await self._finalize(attempt)

        try:
            if provider == Provider.PAYPAL:
                session = await self.gateways.open_paypal(attempt)
            else:
                session = await self.gateways.open_paymob(attempt)
        except CheckoutError as e:
            if not self.store.is_active(owner_id, attempt.attempt_id):
                return Ignored(attempt.attempt_id)
            attempt.apply(GatewayEvent.FAIL)
            attempt.error = e.message
            logger.warning("checkout.attempt init failed id=%s error=%s", attempt.attempt_id, e.message)
            return Err(ErrorKind.GATEWAY_INIT, e.message, {"attemptId": attempt.attempt_id, **self._draft_payload(attempt)})

        if not self.store.is_active(owner_id, attempt.attempt_id):
            return Ignored(attempt.attempt_id)
        attempt.session = session
        attempt.apply(GatewayEvent.OPENED)
        return Ok(attempt)

    # --- Callbacks passerelles --------------------------------------------

    def _active(self, owner_id: str, attempt_id: str) -> Optional[CheckoutAttempt]:
        if not self.store.is_active(owner_id, attempt_id):
            logger.info("checkout.callback stale ignored owner=%s attempt=%s", owner_id, attempt_id)
            return None
        return self.store.get_active(owner_id)

    async def handle_paymob_result(self, owner_id: str, attempt_id: str, meta: Dict[str, Any]) -> Result:
        """
        Résultat de l'iframe Paymob (postMessage/redirection): {status, txnCode, transactionId}.
        """
        attempt = self._active(owner_id, attempt_id)
        if attempt is None:
            return Ignored(attempt_id)
        if attempt.order is not None:
            return Ok(attempt.order)
        if attempt.provider not in (Provider.CARD, Provider.WALLET):
            return Err(ErrorKind.VALIDATION, "Cette tentative n'est pas un paiement Paymob")
        if attempt.state == GatewayState.SUCCESS and attempt.confirmation:
            return await self._finalize(attempt)

        status = (meta or {}).get("status")
        if status == "pending":
            return Ok(attempt)
        if status != "success":
            code = meta.get("txnCode") if meta else None
            suffix = f" (code {code})" if code else ""
            return self._close(attempt, GatewayEvent.FAIL, ErrorKind.GATEWAY_OUTCOME,
                               f"Le paiement n'a pas abouti. Veuillez réessayer.{suffix}")

        rejected = self._reject_unless_awaiting(attempt)
        if rejected is not None:
            return rejected
        attempt.apply(GatewayEvent.APPROVE)
        method, label = PAYMENT_METHODS[attempt.provider]
        session = attempt.session
        attempt.confirmation = {
            "type": method,
            "label": label,
            "provider": "paymob",
            "paymobOrderId": session.paymob_order_id,
            "amountCents": session.amount_cents,
            "transactionId": meta.get("transactionId"),
            "txnCode": meta.get("txnCode"),
            "status": status,
            "walletNumber": attempt.wallet_number if attempt.provider == Provider.WALLET else None,
        }
        return await self._finalize(attempt)

    async def handle_paypal_approve(self, owner_id: str, attempt_id: str, capture: Dict[str, Any]) -> Result:
        """
        onApprove du SDK PayPal. Si seul l'orderId est fourni, la capture est faite côté serveur.
        """
        attempt = self._active(owner_id, attempt_id)
        if attempt is None:
            return Ignored(attempt_id)
        if attempt.order is not None:
            return Ok(attempt.order)
        if attempt.provider != Provider.PAYPAL:
            return Err(ErrorKind.VALIDATION, "Cette tentative n'est pas un paiement PayPal")
        if attempt.state == GatewayState.SUCCESS and attempt.confirmation:
            return await self._finalize(attempt)
        rejected = self._reject_unless_awaiting(attempt)
        if rejected is not None:
            return rejected

        capture = dict(capture or {})
        paypal_order_id = (
            capture.get("orderId")
            or capture.get("token")
            or (attempt.session.paypal_order_id if attempt.session else None)
        )
        if not capture.get("captureId") and not capture.get("raw"):
            if not paypal_order_id:
                return Err(ErrorKind.GATEWAY_OUTCOME, "Commande PayPal introuvable")
            try:
                capture = {**capture, **await self.gateways.capture_paypal(paypal_order_id)}
            except CheckoutError as e:
                if not self.store.is_active(owner_id, attempt_id):
                    return Ignored(attempt_id)
                return self._close(attempt, GatewayEvent.FAIL, ErrorKind.GATEWAY_OUTCOME, e.message)
            if not self.store.is_active(owner_id, attempt_id):
                return Ignored(attempt_id)
            if attempt.order is not None:
                return Ok(attempt.order)

        raw = capture.get("raw") or {}
        status = capture.get("status") or raw.get("status")
        if status and str(status).upper() not in PAYPAL_CAPTURED_STATUSES:
            return self._close(attempt, GatewayEvent.FAIL, ErrorKind.GATEWAY_OUTCOME,
                               f"Paiement PayPal non confirmé (status={status})")

        rejected = self._reject_unless_awaiting(attempt)
        if rejected is not None:
            return rejected
        attempt.apply(GatewayEvent.APPROVE)
        method, label = PAYMENT_METHODS[Provider.PAYPAL]
        attempt.confirmation = {
            "type": method,
            "label": label,
            "provider": "paypal",
            "paypalOrderId": paypal_order_id or raw.get("id"),
            "paypalCaptureId": capture.get("captureId"),
            "status": status,
            "payerEmail": (raw.get("payer") or {}).get("email_address") or (capture.get("payer") or {}).get("email_address"),
        }
        return await self._finalize(attempt)

    def handle_paypal_cancel(self, owner_id: str, attempt_id: str) -> Result:
        return self.cancel(owner_id, attempt_id)

    def handle_paypal_error(self, owner_id: str, attempt_id: str, message: Optional[str] = None) -> Result:
        attempt = self._active(owner_id, attempt_id)
        if attempt is None:
            return Ignored(attempt_id)
        if attempt.order is not None:
            return Ok(attempt.order)
        return self._close(attempt, GatewayEvent.FAIL, ErrorKind.GATEWAY_OUTCOME,
                           message or "Impossible de démarrer PayPal. Veuillez réessayer.")

    def cancel(self, owner_id: str, attempt_id: str) -> Result:
        """
        Fermeture de l'overlay par le client: annulation propre, aucune commande.
        Retourne Ok(attempt) en état cancelled (brouillon inclus pour réafficher le formulaire).
        """
        attempt = self._active(owner_id, attempt_id)
        if attempt is None:
            return Ignored(attempt_id)
        if attempt.order is not None:
            return Ok(attempt.order)
        if attempt.state == GatewayState.SUCCESS:
            return Err(ErrorKind.VALIDATION, "Paiement déjà confirmé: utilisez la finalisation")
        if attempt.state not in (GatewayState.CANCELLED, GatewayState.ERROR):
            attempt.apply(GatewayEvent.CANCEL)
        self.store.discard(owner_id, attempt_id)
        logger.info("checkout.attempt cancelled id=%s", attempt_id)
        return Ok(attempt)

    # --- Finalisation -------------------------------------------------------

    async def retry_finalization(self, owner_id: str, attempt_id: str) -> Result:
        """Réessaie uniquement la persistance avec la confirmation conservée (aucun nouveau débit)."""
        attempt = self._active(owner_id, attempt_id)
        if attempt is None:
            return Ignored(attempt_id)
        if attempt.order is not None:
            return Ok(attempt.order)
        if attempt.state != GatewayState.SUCCESS or not attempt.confirmation:
            return Err(ErrorKind.VALIDATION, "Aucun paiement confirmé pour cette tentative")
        return await self._finalize(attempt)

    async def _finalize(self, attempt: CheckoutAttempt) -> Result:
        if attempt.order is not None:
            return Ok(attempt.order)
        method, label = PAYMENT_METHODS[attempt.provider]
        try:
            order = await run_in_threadpool(
                self.finalizer,
                attempt.draft,
                payment_method=method,
                payment_summary=label,
                payment_details=attempt.confirmation,
                attempt_id=attempt.attempt_id,
            )
        except Exception as e:
            logger.exception("checkout.finalize failed id=%s", attempt.attempt_id)
            order = None
            attempt.error = str(e)
        if not order:
            attempt.error = attempt.error or "Persistance de la commande impossible"
            logger.error("checkout.finalize no order id=%s confirmation kept", attempt.attempt_id)
            return Err(
                ErrorKind.FINALIZATION,
                "Paiement confirmé mais la commande n'a pas pu être enregistrée. Réessayez la finalisation.",
                {"attemptId": attempt.attempt_id, "confirmation": attempt.confirmation},
            )
        attempt.order = order
        attempt.error = None
        logger.info("checkout.finalize ok id=%s order_id=%s", attempt.attempt_id, order.get("id"))
        return Ok(order)

    # --- Helpers ------------------------------------------------------------

    def _reject_unless_awaiting(self, attempt: CheckoutAttempt) -> Optional[Err]:
        """Un succès passerelle n'est accepté que sur une session ouverte (awaiting)."""
        if attempt.state == GatewayState.AWAITING:
            return None
        logger.warning(
            "checkout.callback success refused id=%s state=%s", attempt.attempt_id, attempt.state.value
        )
        return Err(
            ErrorKind.VALIDATION,
            "Aucune session de paiement ouverte pour cette tentative",
            {"attemptId": attempt.attempt_id, "state": attempt.state.value},
        )

    def _draft_payload(self, attempt: CheckoutAttempt) -> Dict[str, Any]:
        return {"draft": attempt.draft.model_dump(by_alias=True, mode="json")}

    def _close(self, attempt: CheckoutAttempt, event: GatewayEvent, kind: ErrorKind, message: str) -> Err:
        if attempt.state in (GatewayState.OPENING, GatewayState.AWAITING):
            attempt.apply(event)
        attempt.error = message
        self.store.discard(attempt.owner_id, attempt.attempt_id)
        logger.info("checkout.attempt closed id=%s state=%s", attempt.attempt_id, attempt.state.value)
        return Err(kind, message, {"attemptId": attempt.attempt_id, **self._draft_payload(attempt)})
