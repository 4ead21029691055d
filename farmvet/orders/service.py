"""Couche service de la feature Orders.
Rôles:
- Finaliser: persister une commande à partir d'un OrderDraft et du détail de paiement confirmé.
- Administrer: changer le statut (avance uniquement, annulation avec note), commenter.
- Côté client: lister ses commandes, confirmer la livraison.
Effets secondaires best-effort (stock, notifications): journalisés, jamais bloquants.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException

from farmvet.orders import models
from farmvet.orders import repository

logger = logging.getLogger(__name__)

def _update_stock(items: List[Dict[str, Any]], sign: int) -> None:
    for item in items:
        product_id = item.get("productId") or item.get("id")
        qty = abs(int(item.get("quantity") or 0))
        if product_id and qty:
            repository.adjust_stock(product_id, sign * qty)

def create_order(
    draft: Any,
    *,
    payment_method: str,
    payment_summary: Optional[str] = None,
    payment_details: Optional[Dict[str, Any]] = None,
    attempt_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Persiste la commande (statut initial 'pending', un seul statusHistory).
    - Si une commande existe déjà pour attempt_id, elle est renvoyée telle quelle.
    - Retourne None si l'insertion échoue (l'appelant conserve la confirmation pour réessayer).
    """
    if attempt_id:
        existing = repository.find_order_by_attempt(attempt_id)
        if existing:
            logger.info("orders.create_order already persisted attempt_id=%s order_id=%s", attempt_id, existing.get("id"))
            return models.to_public(existing)

    items = models.sanitize_items(draft.cart_items)
    shipping = draft.shipping.model_dump(by_alias=True)
    totals = draft.summary.model_dump()
    payload = {
        "reference": models.build_reference(),
        "order_number": models.build_order_number(),
        "user_id": draft.user_id,
        "user_email": draft.user_email,
        "user_name": draft.user_name,
        "items": items,
        "shipping": {**shipping, "recipient": shipping.get("fullName") or draft.user_name},
        "totals": totals,
        "total": totals.get("total", 0),
        "payment_method": payment_method,
        "payment_summary": payment_summary or payment_method,
        "payment_details": models.sanitize_payment_details(payment_details),
        "status": models.STATUS_PENDING,
        "status_history": [models.status_entry(models.STATUS_PENDING)],
        "comments": [],
        "attempt_id": attempt_id,
        "created_at": models.now_iso(),
    }
    row = repository.insert_order(payload)
    if not row:
        return None
    _update_stock(items, -1)
    logger.info("orders.create_order ok order_id=%s method=%s total=%s", row.get("id"), payment_method, payload["total"])
    return models.to_public(row)

def _require_order(order_id: str) -> Dict[str, Any]:
    row = repository.get_order(order_id)
    if not row:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return row

def get_order_for_user(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    row = _require_order(order_id)
    if row.get("user_id") != user.get("id") and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Commande appartenant à un autre utilisateur")
    return models.to_public(row)

def list_user_orders(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    return [models.to_public(r) for r in repository.list_user_orders(user_id, limit)]

def list_admin_orders(limit: int = 100, status: Optional[str] = None) -> List[Dict[str, Any]]:
    return [models.to_public(r) for r in repository.list_orders(limit, status)]

def _notify_status(row: Dict[str, Any], status: str) -> None:
    if row.get("user_id"):
        repository.insert_notification({
            "recipient_id": row["user_id"],
            "type": "order_update",
            "title": f"Commande #{row.get('order_number') or row.get('id')}",
            "message": f"Le statut de votre commande est maintenant « {status} ».",
            "order_id": row.get("id"),
        })

def update_status(order_id: str, new_status: str, *, actor: str = "admin", note: Optional[str] = None) -> Dict[str, Any]:
    """
    Change le statut d'une commande.
    - Statuts en avant uniquement (pending -> ... -> delivered).
    - cancelled: forçage admin, note obligatoire (remboursement mentionné si prépayé); stock restauré.
    """
    if new_status not in models.ALL_STATUSES:
        raise HTTPException(status_code=400, detail=f"Statut inconnu: {new_status}")
    row = _require_order(order_id)
    current = row.get("status") or models.STATUS_PENDING

    if new_status == models.STATUS_CANCELLED:
        if actor != "admin":
            raise HTTPException(status_code=403, detail="Annulation réservée à l'administration")
        if current == models.STATUS_CANCELLED:
            raise HTTPException(status_code=400, detail="Commande déjà annulée")
        error = models.cancellation_error(row, note)
        if error:
            raise HTTPException(status_code=400, detail=error)
    elif not models.is_forward(current, new_status):
        raise HTTPException(status_code=400, detail=f"Transition interdite: {current} -> {new_status}")

    extra = {"confirmedBy": "customer"} if actor == "customer" and new_status == models.STATUS_DELIVERED else {}
    history = list(row.get("status_history") or []) + [models.status_entry(new_status, actor=actor, note=note, **extra)]
    updated = repository.update_order(order_id, {"status": new_status, "status_history": history})
    if not updated:
        raise HTTPException(status_code=500, detail="Mise à jour du statut impossible")

    if new_status == models.STATUS_CANCELLED:
        _update_stock(row.get("items") or [], +1)
    if new_status != current:
        _notify_status(row, new_status)
    logger.info("orders.update_status order_id=%s %s -> %s actor=%s", order_id, current, new_status, actor)
    return models.to_public(updated)

def confirm_delivery(order_id: str, user_id: str) -> Dict[str, Any]:
    """Le client confirme la réception d'une commande expédiée."""
    row = _require_order(order_id)
    if row.get("user_id") != user_id:
        raise HTTPException(status_code=403, detail="Commande appartenant à un autre utilisateur")
    if row.get("status") not in (models.STATUS_SHIPPED, models.STATUS_OUT_FOR_DELIVERY):
        raise HTTPException(status_code=400, detail="Seule une commande expédiée peut être confirmée")
    return update_status(order_id, models.STATUS_DELIVERED, actor="customer")

def add_comment(order_id: str, text: str, author: str) -> Dict[str, Any]:
    text = (text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Commentaire vide")
    row = _require_order(order_id)
    comments = list(row.get("comments") or []) + [{"text": text, "author": author, "createdAt": models.now_iso()}]
    updated = repository.update_order(order_id, {"comments": comments})
    if not updated:
        raise HTTPException(status_code=500, detail="Ajout du commentaire impossible")
    return models.to_public(updated)
