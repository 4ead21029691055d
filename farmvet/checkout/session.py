"""
Surface de présentation passerelle: machine à états d'une session.

idle -> opening -> awaiting -> {success | cancelled | error}
COD passe directement de opening à success (succès immédiat par définition).
Les états terminaux n'acceptent plus aucun événement.
"""
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class GatewayState(str, Enum):
    IDLE = "idle"
    OPENING = "opening"
    AWAITING = "awaiting"
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


class GatewayEvent(str, Enum):
    OPEN = "open"
    OPENED = "opened"
    APPROVE = "approve"
    CANCEL = "cancel"
    FAIL = "fail"


class Provider(str, Enum):
    CARD = "card"
    WALLET = "wallet"
    PAYPAL = "paypal"
    COD = "cod"


TERMINAL_STATES = frozenset({GatewayState.SUCCESS, GatewayState.CANCELLED, GatewayState.ERROR})

TRANSITIONS: Dict[tuple, GatewayState] = {
    (GatewayState.IDLE, GatewayEvent.OPEN): GatewayState.OPENING,
    (GatewayState.OPENING, GatewayEvent.OPENED): GatewayState.AWAITING,
    (GatewayState.OPENING, GatewayEvent.APPROVE): GatewayState.SUCCESS,
    (GatewayState.OPENING, GatewayEvent.CANCEL): GatewayState.CANCELLED,
    (GatewayState.OPENING, GatewayEvent.FAIL): GatewayState.ERROR,
    (GatewayState.AWAITING, GatewayEvent.APPROVE): GatewayState.SUCCESS,
    (GatewayState.AWAITING, GatewayEvent.CANCEL): GatewayState.CANCELLED,
    (GatewayState.AWAITING, GatewayEvent.FAIL): GatewayState.ERROR,
}


class InvalidTransition(Exception):
    def __init__(self, state: GatewayState, event: GatewayEvent):
        super().__init__(f"Transition interdite: {state.value} --{event.value}-->")
        self.state = state
        self.event = event


def transition(state: GatewayState, event: GatewayEvent) -> GatewayState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event)


def can_transition(state: GatewayState, event: GatewayEvent) -> bool:
    return (state, event) in TRANSITIONS


def session_status(state: GatewayState) -> str:
    """Statut public de la session: pending tant que l'état n'est pas terminal."""
    return state.value if state in TERMINAL_STATES else "pending"


class GatewaySession(BaseModel):
    """Poignée de paiement émise pour une tentative (URL iframe, commande PayPal ou COD)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: Provider
    order_ref: str
    status: str = "pending"
    url: Optional[str] = None
    paymob_order_id: Optional[Any] = None
    payment_key: Optional[str] = None
    amount_cents: Optional[int] = None
    paypal_order_id: Optional[str] = None
    approval_url: Optional[str] = None
    settlement_amount: Optional[str] = None
    settlement_currency: Optional[str] = None
