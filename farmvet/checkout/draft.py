"""
Brouillon de commande (OrderDraft): lignes panier, livraison, totaux dérivés.
Logique pure (pas de passerelle, pas de DB).
"""
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from farmvet.config import SHIPPING_FEE
from farmvet.checkout.errors import CheckoutError, ErrorKind

PHONE_REGEX = re.compile(r"^(01)[0-9]{9}$")
PHONE_LENGTH = 11


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartItem(_CamelModel):
    id: str
    name: str = "Item"
    price: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    quantity: int = Field(default=1, ge=1)
    thumbnail_url: str = ""
    stock: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_storefront_keys(cls, data: Any) -> Any:
        # Le panier Redux envoie parfois title/imageUrl au lieu de name/thumbnailUrl
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("name") and data.get("title"):
                data["name"] = data["title"]
            if not data.get("thumbnailUrl") and not data.get("thumbnail_url"):
                data["thumbnailUrl"] = data.get("imageUrl") or data.get("image") or ""
            if data.get("id") is not None:
                data["id"] = str(data["id"])
        return data

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)


class ShippingInfo(_CamelModel):
    full_name: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    notes: str = ""

    @model_validator(mode="after")
    def _normalize(self) -> "ShippingInfo":
        self.full_name = self.full_name.strip()
        self.address = self.address.strip()
        self.city = self.city.strip()
        self.notes = self.notes.strip()
        self.phone = normalize_phone(self.phone)
        return self


class OrderSummary(_CamelModel):
    subtotal: float
    shipping: float
    total: float


class OrderDraft(_CamelModel):
    cart_items: List[CartItem]
    shipping: ShippingInfo
    summary: OrderSummary
    user_id: str = ""
    user_email: str = ""
    user_name: str = ""


def normalize_phone(value: Optional[str] = "") -> str:
    """Ne garde que les chiffres, tronqués à 11 (format mobile égyptien 01XXXXXXXXX)."""
    return re.sub(r"\D", "", value or "")[:PHONE_LENGTH]


def validate_shipping(info: ShippingInfo) -> Dict[str, str]:
    """
    Valide les champs de livraison.
    Retour: {champ: message} (vide si tout est valide).
    """
    errors: Dict[str, str] = {}
    if not info.full_name:
        errors["fullName"] = "Nom complet requis"
    if not PHONE_REGEX.match(info.phone):
        errors["phone"] = "Numéro de téléphone invalide (01XXXXXXXXX)"
    if not info.address:
        errors["address"] = "Adresse requise"
    if not info.city:
        errors["city"] = "Ville requise"
    return errors


def compute_summary(items: List[CartItem], shipping_fee: float = SHIPPING_FEE) -> OrderSummary:
    subtotal = round(sum(item.price * item.quantity for item in items), 2)
    shipping = float(shipping_fee) if items else 0.0
    return OrderSummary(subtotal=subtotal, shipping=shipping, total=round(subtotal + shipping, 2))


def check_stock(items: List[CartItem]) -> List[str]:
    """Retourne les ids des lignes dont la quantité dépasse le stock connu."""
    return [item.id for item in items if item.stock is not None and item.quantity > item.stock]


def build_draft(
    cart_items: List[Dict[str, Any]],
    shipping: Dict[str, Any],
    user: Optional[Dict[str, Any]] = None,
    shipping_fee: float = SHIPPING_FEE,
) -> OrderDraft:
    """
    Construit un OrderDraft valide à partir du panier et du formulaire.
    - Le résumé (subtotal/shipping/total) est toujours recalculé, jamais repris du client.
    - Lève CheckoutError(VALIDATION) si panier vide, champ invalide ou stock insuffisant.
    """
    if not cart_items:
        raise CheckoutError(ErrorKind.VALIDATION, "Votre panier est vide")
    try:
        items = [CartItem.model_validate(raw) for raw in cart_items]
        info = ShippingInfo.model_validate(shipping or {})
    except ValidationError as e:
        fields = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
        raise CheckoutError(ErrorKind.VALIDATION, "Panier ou livraison invalide", {"fields": fields})

    field_errors = validate_shipping(info)
    if field_errors:
        raise CheckoutError(ErrorKind.VALIDATION, ", ".join(field_errors.values()), {"fields": field_errors})

    over_stock = check_stock(items)
    if over_stock:
        raise CheckoutError(ErrorKind.VALIDATION, "Certains articles dépassent le stock disponible", {"items": over_stock})

    user = user or {}
    email = user.get("email") or ""
    return OrderDraft(
        cart_items=items,
        shipping=info,
        summary=compute_summary(items, shipping_fee),
        user_id=str(user.get("id") or ""),
        user_email=email,
        user_name=user.get("name") or (user.get("metadata") or {}).get("full_name") or info.full_name or email,
    )
