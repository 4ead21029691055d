"""
Réconciliation des montants côté serveur (pas d'appel réseau).
Le montant envoyé par le client n'est qu'un indice: le panier fait foi dès qu'il est présent.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from farmvet.config import EGP_TO_USD_RATE, MIN_CHARGE_CENTS

# module farmvet.payments.amounts
def _to_decimal(value: Any) -> Decimal:
    try:
        d = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    # NaN/Infinity: traités comme un montant absent
    return d if d.is_finite() else Decimal(0)

def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))

def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)

def to_cents(amount: Any) -> int:
    """Convertit un montant décimal (ex: 12.345) en unités mineures arrondies (1235)."""
    return _round_half_up(_to_decimal(amount) * 100)

def cart_total_cents(cart_items: Optional[Iterable[Any]]) -> int:
    """
    Somme des lignes en unités mineures.
    - prix négatif ramené à 0, quantité ramenée à au moins 1
    - accepte des dicts bruts ou des CartItem
    """
    total = 0
    for item in cart_items or []:
        price = max(Decimal(0), _to_decimal(_field(item, "price")))
        try:
            qty = int(_field(item, "quantity") or 1)
        except (TypeError, ValueError):
            qty = 1
        total += _round_half_up(price * 100) * max(1, qty)
    return total

def calculate_amount_cents(amount: Any = None, cart_items: Optional[Iterable[Any]] = None) -> int:
    """
    Montant à débiter (unités mineures), recalculé depuis le panier.
    - Panier non vide: son total fait foi, quel que soit `amount`.
    - Panier vide: on retombe sur `amount` (flux sans lignes).
    - Plancher MIN_CHARGE_CENTS: on ne débite jamais zéro.
    """
    cart_total = cart_total_cents(cart_items)
    requested = to_cents(amount) if amount is not None else 0
    base = cart_total if cart_total > 0 else requested
    return max(MIN_CHARGE_CENTS, base)

def to_settlement_amount(amount_egp: Any, currency: str, rate: float = EGP_TO_USD_RATE) -> Decimal:
    """
    Convertit un montant EGP vers la devise de règlement de la passerelle.
    - USD: conversion au taux fixe configuré (EGP_TO_USD_RATE)
    - EGP (ou autre): montant inchangé
    Arrondi à 2 décimales (ROUND_HALF_UP).
    """
    amount = _to_decimal(amount_egp)
    if (currency or "").upper() == "USD":
        amount = amount * _to_decimal(rate)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def paymob_items(cart_items: Optional[Iterable[Any]], amount_cents: int) -> List[Dict[str, Any]]:
    """
    Lignes de commande au format Paymob.
    - Une ligne par article (amount_cents unitaire)
    - Panier vide: une ligne unique "Order" portant le montant réconcilié
    """
    lines: List[Dict[str, Any]] = []
    for item in cart_items or []:
        name = _field(item, "name") or _field(item, "title") or "Item"
        try:
            qty = int(_field(item, "quantity") or 1)
        except (TypeError, ValueError):
            qty = 1
        lines.append({
            "name": name,
            "amount_cents": to_cents(max(Decimal(0), _to_decimal(_field(item, "price")))),
            "description": _field(item, "description") or name or "Cart item",
            "quantity": max(1, qty),
        })
    if not lines:
        lines.append({"name": "Order", "amount_cents": amount_cents, "description": "Cart order", "quantity": 1})
    return lines

def split_full_name(full_name: Optional[str]) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "Guest", "User"
    return parts[0], " ".join(parts[1:]) or "User"

def billing_data(form: Optional[Dict[str, Any]], user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Bloc billing_data exigé par Paymob (champs NA si inconnus).
    form: {fullName, phone, address, city}; user: {email, displayName}
    """
    form = form or {}
    user = user or {}
    full_name = (form.get("fullName") or user.get("displayName") or "Guest User").strip()
    first_name, last_name = split_full_name(full_name)
    city = form.get("city") or ""
    return {
        "first_name": first_name,
        "last_name": last_name,
        "email": user.get("email") or "unknown@example.com",
        "phone_number": form.get("phone") or "+201000000000",
        "apartment": "NA",
        "floor": "NA",
        "street": form.get("address") or "NA",
        "building": "NA",
        "shipping_method": "PKG",
        "postal_code": "00000",
        "city": city or "Cairo",
        "state": city or "NA",
        "country": "EG",
    }
