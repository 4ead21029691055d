"""
Accès aux données pour la feature 'orders' (tables orders, products, notifications).
Écritures via le client service-role; en cas d'erreur on journalise et on renvoie None/[].
"""
from typing import Any, Dict, List, Optional
import logging
import farmvet.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module farmvet.orders.repository
def insert_order(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .insert(payload)
            .execute()
        )
        rows = res.data or []
        return rows[0] if isinstance(rows, list) and rows else None
    except Exception:
        logger.exception("orders.repository.insert_order failed attempt_id=%s", payload.get("attempt_id"))
        return None

def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("orders.repository.get_order failed order_id=%s", order_id)
        return None

def find_order_by_attempt(attempt_id: str) -> Optional[Dict[str, Any]]:
    """Commande déjà créée pour une tentative (garde anti-doublon à la finalisation)."""
    if not attempt_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("attempt_id", attempt_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("orders.repository.find_order_by_attempt failed attempt_id=%s", attempt_id)
        return None

def list_user_orders(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.list_user_orders failed user_id=%s", user_id)
        return []

def list_orders(limit: int = 100, status: Optional[str] = None) -> List[Dict[str, Any]]:
    try:
        query = supabase_client.get_service_supabase().table("orders").select("*")
        if status:
            query = query.eq("status", status)
        res = query.order("created_at", desc=True).limit(limit).execute()
        return res.data or []
    except Exception:
        logger.exception("orders.repository.list_orders failed status=%s", status)
        return []

def update_order(order_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update(fields)
            .eq("id", order_id)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("orders.repository.update_order failed order_id=%s", order_id)
        return None

def adjust_stock(product_id: str, delta: int) -> bool:
    """
    Ajoute `delta` au stock d'un produit (négatif à la commande, positif à l'annulation).
    Le stock ne descend jamais sous 0.
    """
    try:
        client = supabase_client.get_service_supabase()
        res = client.table("products").select("id, stock").eq("id", product_id).limit(1).execute()
        rows = res.data or []
        if not rows:
            return False
        current = int(rows[0].get("stock") or 0)
        next_stock = max(0, current + delta)
        client.table("products").update({"stock": next_stock}).eq("id", product_id).execute()
        return True
    except Exception:
        logger.exception("orders.repository.adjust_stock failed product_id=%s delta=%s", product_id, delta)
        return False

def insert_notification(payload: Dict[str, Any]) -> bool:
    try:
        (
            supabase_client.get_service_supabase()
            .table("notifications")
            .insert({**payload, "read": False})
            .execute()
        )
        return True
    except Exception:
        logger.exception("orders.repository.insert_notification failed type=%s", payload.get("type"))
        return False
