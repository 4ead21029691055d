# module farmvet.orders.views

"""Endpoints des commandes.
- Client (/api/v1/orders): historique, détail (facture), confirmation de réception.
- Admin (/api/v1/admin/orders): liste filtrable, changement de statut, commentaires.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from farmvet.orders import service as orders_service
from farmvet.utils.security import require_admin, require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])
admin_router = APIRouter(prefix="/api/v1/admin/orders", tags=["Admin Orders"])


class StatusUpdateRequest(BaseModel):
    status: str
    note: Optional[str] = None


class CommentRequest(BaseModel):
    text: str


@router.get("")
def my_orders(user: dict = Depends(require_user)):
    return JSONResponse({"orders": orders_service.list_user_orders(user.get("id"))})


@router.get("/{order_id}")
def order_detail(order_id: str, user: dict = Depends(require_user)):
    return JSONResponse(orders_service.get_order_for_user(order_id, user))


@router.post("/{order_id}/confirm-delivery")
def confirm_delivery(order_id: str, user: dict = Depends(require_user)):
    """Le client confirme avoir reçu une commande expédiée (statut delivered, confirmedBy=customer)."""
    return JSONResponse(orders_service.confirm_delivery(order_id, user.get("id")))


@admin_router.get("")
def admin_orders(status: Optional[str] = None, limit: int = 100, admin: dict = Depends(require_admin)):
    return JSONResponse({"orders": orders_service.list_admin_orders(limit=limit, status=status)})


@admin_router.patch("/{order_id}/status")
def admin_update_status(order_id: str, body: StatusUpdateRequest, admin: dict = Depends(require_admin)):
    """Statut en avant uniquement; cancelled exige une note détaillée (remboursement si prépayé)."""
    order = orders_service.update_status(order_id, body.status, actor="admin", note=body.note)
    logger.info("admin %s set order %s to %s", admin.get("email"), order_id, body.status)
    return JSONResponse(order)


@admin_router.post("/{order_id}/comments")
def admin_add_comment(order_id: str, body: CommentRequest, admin: dict = Depends(require_admin)):
    author = admin.get("name") or admin.get("email") or "admin"
    return JSONResponse(orders_service.add_comment(order_id, body.text, author))
