"""
Erreurs et résultats typés du checkout.

- ErrorKind: taxonomie des échecs (validation, init passerelle, issue passerelle, finalisation).
- CheckoutError: exception levée aux frontières (draft, clients passerelles) puis convertie en JSON.
- Ok / Err / Ignored: résultats renvoyés par l'orchestrateur, pour que la finalisation
  se traite par valeur et non par exceptions.
"""
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    GATEWAY_INIT = "gateway_init"
    GATEWAY_OUTCOME = "gateway_outcome"
    FINALIZATION = "finalization"
    NOT_FOUND = "not_found"


# Code HTTP associé à chaque famille d'erreur
HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.GATEWAY_INIT: 400,
    ErrorKind.GATEWAY_OUTCOME: 400,
    ErrorKind.FINALIZATION: 502,
    ErrorKind.NOT_FOUND: 404,
}


class CheckoutError(Exception):
    def __init__(self, kind: ErrorKind, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.payload = payload or {}

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 400)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "kind": self.kind.value}
        if self.payload:
            body["payload"] = self.payload
        return body


class GatewayError(CheckoutError):
    """Échec d'un appel processeur (Paymob/PayPal): message extrait du corps de réponse."""

    def __init__(self, message: str, provider_status: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.GATEWAY_INIT, message, payload)
        self.provider_status = provider_status


class Ok(Generic[T]):
    __slots__ = ("value",)

    def __init__(self, value: T):
        self.value = value

    @property
    def ok(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


class Err:
    __slots__ = ("kind", "message", "payload")

    def __init__(self, kind: ErrorKind, message: str, payload: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.message = message
        self.payload = payload or {}

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: CheckoutError) -> "Err":
        return cls(error.kind, error.message, error.payload)

    def to_error(self) -> CheckoutError:
        return CheckoutError(self.kind, self.message, self.payload)

    def __repr__(self) -> str:
        return f"Err({self.kind.value!r}, {self.message!r})"


class Ignored:
    """Callback d'une tentative supplantée: écarté, sans effet ni erreur."""
    __slots__ = ("attempt_id",)

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id

    @property
    def ok(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Ignored({self.attempt_id!r})"


Result = Union[Ok, Err, Ignored]
