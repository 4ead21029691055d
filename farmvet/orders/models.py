# module farmvet.orders.models
"""Modèle des commandes persistées.
- Statuts et règles de transition (avance uniquement, annulation = forçage admin).
- Normalisation des lignes, référence AGRI-..., numéro de commande.
- Nettoyage de paymentDetails: aucune donnée carte brute n'est stockée.
- Conversion ligne Supabase (snake_case) -> représentation publique (camelCase).
"""
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SHIPPED = "shipped"
STATUS_OUT_FOR_DELIVERY = "out_for_delivery"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

# Ordre du cycle de vie; cancelled est hors séquence
STATUS_FLOW = [
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_OUT_FOR_DELIVERY,
    STATUS_DELIVERED,
]
ALL_STATUSES = set(STATUS_FLOW) | {STATUS_CANCELLED}

CANCEL_NOTE_MIN_LENGTH = 20

# Clés interdites dans paymentDetails (PAN, CVV, etc.)
SENSITIVE_PAYMENT_KEYS = {"number", "cardnumber", "card_number", "pan", "cvv", "cvc", "expiry", "exp", "expmonth", "expyear"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_forward(current: str, new: str) -> bool:
    if current not in STATUS_FLOW or new not in STATUS_FLOW:
        return False
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


def cancellation_error(order: Dict[str, Any], note: Optional[str]) -> Optional[str]:
    """
    Vérifie la note d'annulation.
    - obligatoire, au moins CANCEL_NOTE_MIN_LENGTH caractères
    - commande prépayée (hors COD): la note doit décrire le remboursement ("refund")
    Retourne un message d'erreur ou None.
    """
    text = (note or "").strip()
    if not text:
        return "Une raison d'annulation détaillée est requise"
    if len(text) < CANCEL_NOTE_MIN_LENGTH:
        return f"Raison d'annulation trop courte (minimum {CANCEL_NOTE_MIN_LENGTH} caractères)"
    if (order.get("payment_method") or "cod") != "cod" and "refund" not in text.lower():
        return "Commande prépayée: la raison doit préciser le remboursement (refund)"
    return None


def sanitize_items(items: List[Any]) -> List[Dict[str, Any]]:
    """Normalise les lignes (dict ou CartItem) et calcule total = prix * quantité."""
    normalized: List[Dict[str, Any]] = []
    for raw in items or []:
        item = raw.model_dump(by_alias=True) if hasattr(raw, "model_dump") else dict(raw)
        quantity = int(item.get("quantity") or 1)
        price = float(item.get("price") or 0)
        image = item.get("thumbnailUrl") or item.get("imageUrl") or item.get("image") or ""
        product_id = str(item.get("id") or item.get("productId") or "")
        normalized.append({
            "productId": product_id,
            "id": product_id,
            "name": item.get("name") or item.get("title") or "Item",
            "price": price,
            "quantity": quantity,
            "total": round(price * quantity, 2),
            "thumbnailUrl": image,
        })
    return normalized


def sanitize_payment_details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not details:
        return {}
    return {
        k: v for k, v in details.items()
        if v is not None and k.replace("-", "").replace("_", "").lower() not in SENSITIVE_PAYMENT_KEYS
    }


def build_reference(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%y%m%d%H%M")
    return f"AGRI-{stamp}"


def build_order_number() -> str:
    segment = str(int(time.time() * 1000))[-6:]
    return f"{segment}{random.randint(100, 999)}"


def status_entry(status: str, actor: Optional[str] = None, note: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"status": status, "changedAt": now_iso()}
    if actor:
        entry["actor"] = actor
    if note:
        entry["note"] = note
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def to_public(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Ligne 'orders' -> document Order exposé par l'API."""
    if not row:
        return None
    return {
        "id": str(row.get("id") or ""),
        "reference": row.get("reference"),
        "orderNumber": row.get("order_number"),
        "userId": row.get("user_id"),
        "userEmail": row.get("user_email"),
        "userName": row.get("user_name"),
        "items": row.get("items") or [],
        "shipping": row.get("shipping") or {},
        "totals": row.get("totals") or {},
        "paymentMethod": row.get("payment_method"),
        "paymentSummary": row.get("payment_summary"),
        "paymentDetails": row.get("payment_details") or {},
        "status": row.get("status"),
        "statusHistory": row.get("status_history") or [],
        "comments": row.get("comments") or [],
        "attemptId": row.get("attempt_id"),
        "createdAt": row.get("created_at"),
    }
